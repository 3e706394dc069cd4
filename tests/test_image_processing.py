"""
Unit tests for crop geometry
"""
import numpy as np
import pytest

from ezmark.grader.image_processing import (
    CropConfig,
    CropError,
    compute_crop_box,
    crop_component,
    crop_to_file,
    load_image,
    mm_to_pixels,
    save_image,
)
from ezmark.grader.models import Position


class TestMmToPixels:
    """Test cases for millimetre conversion"""

    def test_one_pixel_per_mm(self):
        assert mm_to_pixels(10, 210, 210) == 10
        assert mm_to_pixels(297, 297, 297) == 297

    def test_scales_with_image(self):
        # 216 dpi render of A4 is roughly 1786 x 2526 px
        assert mm_to_pixels(105, 1786, 210) == 893

    def test_halves_round_up(self):
        assert mm_to_pixels(2.5, 210, 210) == 3
        assert mm_to_pixels(3.5, 210, 210) == 4


class TestComputeCropBox:
    """Test cases for padded crop rectangles"""

    def test_padding_applied(self):
        box = compute_crop_box(Position(page_index=0, top=50, left=30, width=100, height=20), 210, 297)
        assert (box.left, box.top, box.width, box.height) == (20, 40, 120, 40)

    def test_x_uses_width_and_y_uses_height(self):
        # 2 px/mm horizontally, 3 px/mm vertically
        box = compute_crop_box(
            Position(page_index=0, top=10, left=10, width=10, height=10), 420, 891,
            CropConfig(padding=0)
        )
        assert (box.left, box.top, box.width, box.height) == (20, 30, 20, 30)

    def test_clamped_to_top_left(self):
        box = compute_crop_box(Position(page_index=0, top=2, left=3, width=50, height=10), 210, 297)
        assert box.left == 0
        assert box.top == 0

    def test_clamped_to_bottom_right(self):
        box = compute_crop_box(Position(page_index=0, top=280, left=200, width=50, height=50), 210, 297)
        assert box.left + box.width == 210
        assert box.top + box.height == 297

    def test_zero_area_rejected(self):
        with pytest.raises(CropError):
            compute_crop_box(Position(page_index=0, top=10, left=10, width=0, height=10), 210, 297)

    def test_outside_page_rejected(self):
        with pytest.raises(CropError):
            compute_crop_box(Position(page_index=0, top=10, left=400, width=10, height=10), 210, 297)

    def test_non_finite_rejected(self):
        with pytest.raises(CropError):
            compute_crop_box(
                Position(page_index=0, top=float("nan"), left=10, width=10, height=10), 210, 297
            )


class TestCropFiles:
    """Test cases for cropping to disk"""

    def test_crop_component_shape(self):
        page = np.zeros((297, 210, 3), dtype=np.uint8)
        crop = crop_component(page, Position(page_index=0, top=10, left=10, width=100, height=20))
        assert crop.shape == (40, 120, 3)

    def test_crop_to_file_round_trip(self, tmp_path):
        page = np.full((297, 210, 3), 255, dtype=np.uint8)
        page_path = save_image(tmp_path / "page-0.png", page)

        output = crop_to_file(
            page_path,
            Position(page_index=0, top=100, left=50, width=60, height=30),
            tmp_path / "nested" / "q.png",
        )
        crop = load_image(output)
        assert crop is not None
        assert crop.shape == (50, 80, 3)

    def test_missing_page_raises(self, tmp_path):
        with pytest.raises(CropError):
            crop_to_file(
                tmp_path / "missing.png",
                Position(page_index=0, top=10, left=10, width=10, height=10),
                tmp_path / "q.png",
            )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
