"""
Decomposition Module
Splits a multi-student scan into per-paper page images and component crops
"""
import cv2
import numpy as np
import pdfplumber
from pathlib import Path
from typing import List, Optional, Union
import logging

from .image_processing import CropConfig, CropError, crop_component, save_image
from .models import ExamLayout, Paper

logger = logging.getLogger(__name__)


class ScanValidationError(ValueError):
    """Scan or layout cannot be decomposed for the given roster"""


def paper_id_for(index: int) -> str:
    """Synthetic paper id for the zero-based student slot"""
    return f"student-{index + 1}"


def validate_scan(layout: ExamLayout, student_count: int, page_count: int) -> int:
    """
    Check that a scan can be split for a roster.

    Args:
        layout: Exam layout
        student_count: Number of roster students
        page_count: Number of pages in the scan

    Returns:
        Pages per exam

    Raises:
        ScanValidationError: On any mismatch
    """
    if student_count <= 0:
        raise ScanValidationError("Roster has no students")

    header = layout.header_component()
    if header is None:
        raise ScanValidationError("Layout has no header component")

    unpositioned = [
        c.id for c in layout.components
        if (c.is_question or c is header) and c.position is None
    ]
    if unpositioned:
        raise ScanValidationError(
            f"Components without a position: {', '.join(unpositioned)}"
        )

    pages_per_exam = layout.pages_per_exam
    if pages_per_exam <= 0:
        raise ScanValidationError("Layout has no positioned components")

    expected = student_count * pages_per_exam
    if page_count != expected:
        raise ScanValidationError(
            f"PDF page count mismatch: expected {expected} pages "
            f"({student_count} students x {pages_per_exam} pages per exam), "
            f"got {page_count}"
        )

    return pages_per_exam


class PdfRasterizer:
    """Renders scan pages to BGR arrays with pdfplumber"""

    def __init__(self, resolution: int = 216):
        self.resolution = resolution

    def page_count(self, pdf_path: Union[str, Path]) -> int:
        with pdfplumber.open(str(pdf_path)) as pdf:
            return len(pdf.pages)

    def render_pages(self, pdf_path: Union[str, Path]) -> List[np.ndarray]:
        pages = []
        with pdfplumber.open(str(pdf_path)) as pdf:
            for page in pdf.pages:
                rendered = page.to_image(resolution=self.resolution).original
                rgb = np.asarray(rendered.convert("RGB"))
                pages.append(cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
        return pages


class PaperDecomposer:
    """
    Writes the page and crop asset tree of a schedule.

    The asset store decides where files live; this class only decides what
    is written. Runs synchronously, callers offload it to a worker thread.
    """

    def __init__(self, assets, rasterizer: Optional[PdfRasterizer] = None,
                 config: Optional[CropConfig] = None):
        self.assets = assets
        self.rasterizer = rasterizer or PdfRasterizer()
        self.config = config or CropConfig()

    def check(self, pdf_path: Union[str, Path], layout: ExamLayout,
              student_count: int) -> int:
        """Validate the scan without touching any asset; returns pages per exam"""
        try:
            page_count = self.rasterizer.page_count(pdf_path)
        except Exception as e:
            raise ScanValidationError(f"Cannot read scan {Path(pdf_path).name}: {e}") from e
        return validate_scan(layout, student_count, page_count)

    def decompose(
        self,
        schedule_id: str,
        pdf_path: Union[str, Path],
        layout: ExamLayout,
        student_count: int
    ) -> List[Paper]:
        """
        Rasterize the scan and produce one Paper per student slot.

        Raises:
            ScanValidationError: Scan does not fit layout and roster
            CropError: A page or component could not be produced
        """
        pages_per_exam = self.check(pdf_path, layout, student_count)
        header = layout.header_component()

        self.assets.reset_schedule(schedule_id)
        try:
            pages = self.rasterizer.render_pages(pdf_path)
            if len(pages) != student_count * pages_per_exam:
                raise CropError(f"Rasterizer produced {len(pages)} pages")

            for n, page in enumerate(pages):
                save_image(self.assets.all_page_path(schedule_id, n), page)
            logger.info(f"[MATCH:{schedule_id}] Rasterized {len(pages)} pages")

            papers = [
                self._build_paper(schedule_id, i, pages, pages_per_exam, layout)
                for i in range(student_count)
            ]
        except Exception:
            self.assets.reset_schedule(schedule_id)
            raise

        for paper in papers:
            paper.header_image_ref = paper.question_image_refs[header.id]

        logger.info(f"[MATCH:{schedule_id}] Decomposed {len(papers)} papers")
        return papers

    def _build_paper(self, schedule_id: str, index: int, pages: List[np.ndarray],
                     pages_per_exam: int, layout: ExamLayout) -> Paper:
        paper_id = paper_id_for(index)
        start = index * pages_per_exam
        refs = {}

        for offset in range(pages_per_exam):
            page = pages[start + offset]
            save_image(self.assets.paper_page_path(schedule_id, paper_id, offset), page)

            for component in layout.components_on_page(offset):
                try:
                    crop = crop_component(page, component.position, self.config)
                except CropError as e:
                    raise CropError(f"{paper_id}/{component.id}: {e}") from e
                path = self.assets.question_path(schedule_id, paper_id, component.id)
                save_image(path, crop)
                refs[component.id] = self.assets.to_ref(path)

        return Paper(
            paper_id=paper_id,
            start_page=start,
            end_page=start + pages_per_exam,
            question_image_refs=refs,
        )
