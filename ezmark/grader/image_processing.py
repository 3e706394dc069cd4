"""
Image Processing Module
Millimetre-to-pixel geometry and component cropping for scanned pages
"""
import math
import cv2
import numpy as np
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import logging

from .models import Position

logger = logging.getLogger(__name__)


class CropError(RuntimeError):
    """Raised when a component rectangle cannot be cropped from a page"""


@dataclass
class CropConfig:
    """Page geometry used to map layout millimetres onto page images"""
    page_width_mm: float = 210.0
    page_height_mm: float = 297.0
    padding: int = 10


@dataclass
class CropBox:
    """Pixel rectangle, already clamped to the image"""
    left: int
    top: int
    width: int
    height: int

    def apply(self, img: np.ndarray) -> np.ndarray:
        return img[self.top:self.top + self.height, self.left:self.left + self.width]


def mm_to_pixels(mm: float, image_dim: int, page_dim_mm: float) -> int:
    """
    Convert a millimetre offset into pixels of a rendered page.

    Halves round up, so 2.5 maps to 3.
    """
    return int(math.floor(mm * image_dim / page_dim_mm + 0.5))


def compute_crop_box(
    position: Position,
    image_width: int,
    image_height: int,
    config: Optional[CropConfig] = None
) -> CropBox:
    """
    Compute the padded pixel rectangle for a component.

    Args:
        position: Component rectangle in millimetres
        image_width: Page image width in pixels
        image_height: Page image height in pixels
        config: Page geometry and padding

    Returns:
        CropBox clamped to the image bounds

    Raises:
        CropError: If the rectangle is degenerate or falls outside the page
    """
    config = config or CropConfig()
    values = (position.left, position.top, position.width, position.height)
    if not all(math.isfinite(v) for v in values):
        raise CropError(f"Non-finite component position: {values}")
    if position.width <= 0 or position.height <= 0:
        raise CropError(f"Component has no area: {position.width}x{position.height}mm")

    pad = config.padding
    x = mm_to_pixels(position.left, image_width, config.page_width_mm)
    y = mm_to_pixels(position.top, image_height, config.page_height_mm)
    w = mm_to_pixels(position.width, image_width, config.page_width_mm)
    h = mm_to_pixels(position.height, image_height, config.page_height_mm)

    left = max(x - pad, 0)
    top = max(y - pad, 0)
    width = min(w + 2 * pad, image_width - left)
    height = min(h + 2 * pad, image_height - top)

    if width <= 0 or height <= 0:
        raise CropError(
            f"Component at ({position.left}, {position.top})mm lies outside "
            f"the {image_width}x{image_height}px page"
        )

    return CropBox(left=left, top=top, width=width, height=height)


def crop_component(
    img: np.ndarray,
    position: Position,
    config: Optional[CropConfig] = None
) -> np.ndarray:
    """Crop a component out of a page image"""
    height, width = img.shape[:2]
    box = compute_crop_box(position, width, height, config)
    return box.apply(img)


def load_image(path: Union[str, Path], grayscale: bool = False) -> Optional[np.ndarray]:
    """
    Load image from file.

    Args:
        path: Path to image file
        grayscale: Whether to load as grayscale

    Returns:
        Image array or None if failed
    """
    flag = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    img = cv2.imread(str(path), flag)

    if img is None:
        logger.error(f"Failed to load image: {path}")

    return img


def save_image(path: Union[str, Path], img: np.ndarray) -> Path:
    """Write an image as PNG, creating parent directories"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), img):
        raise CropError(f"Failed to write image: {path}")
    return path


def crop_to_file(
    page_path: Union[str, Path],
    position: Position,
    output_path: Union[str, Path],
    config: Optional[CropConfig] = None
) -> Path:
    """Crop a component from a stored page image and write it out"""
    page = load_image(page_path)
    if page is None:
        raise CropError(f"Page image missing: {page_path}")
    return save_image(output_path, crop_component(page, position, config))
