"""
File Service
Handles scan uploads and the per-schedule asset tree
"""
import logging
from pathlib import Path, PurePosixPath
from typing import Optional

from ..config import settings
from ..core import (
    BadRequestException,
    FileProcessingException,
    Messages,
    NotFoundException,
    PreconditionException,
)
from ..utils import (
    ensure_directory,
    format_file_size,
    is_valid_pdf,
    remove_directory,
)

logger = logging.getLogger(__name__)


class AssetStore:
    """
    Path conventions of rendered pages and crops.

    Layout under the root::

        {schedule_id}/all/page-{n}.png
        {schedule_id}/{paper_id}/page-{n}.png
        {schedule_id}/{paper_id}/questions/{component_id}.png

    Refs stored on documents are POSIX paths relative to the root, which is
    also what the static mount serves.
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = ensure_directory(root or settings.ASSETS_DIR)

    def schedule_dir(self, schedule_id: str) -> Path:
        return self.root / schedule_id

    def all_page_path(self, schedule_id: str, page: int) -> Path:
        return self.schedule_dir(schedule_id) / "all" / f"page-{page}.png"

    def paper_page_path(self, schedule_id: str, paper_id: str, page: int) -> Path:
        return self.schedule_dir(schedule_id) / paper_id / f"page-{page}.png"

    def question_path(self, schedule_id: str, paper_id: str, component_id: str) -> Path:
        return self.schedule_dir(schedule_id) / paper_id / "questions" / f"{component_id}.png"

    def to_ref(self, path: Path) -> str:
        return Path(path).relative_to(self.root).as_posix()

    def resolve(self, ref: str) -> Path:
        parts = PurePosixPath(ref).parts
        if not ref or ".." in parts or PurePosixPath(ref).is_absolute():
            raise NotFoundException("Asset", ref)
        return self.root.joinpath(*parts)

    def reset_schedule(self, schedule_id: str) -> None:
        """Remove any asset tree of the schedule"""
        if remove_directory(self.schedule_dir(schedule_id)):
            logger.info(f"Removed stale assets of schedule {schedule_id}")


class FileService:
    """Service for scan uploads and asset management"""

    def __init__(self, uploads_dir: Optional[Path] = None, assets: Optional[AssetStore] = None):
        self.uploads_dir = ensure_directory(uploads_dir or settings.UPLOADS_DIR)
        self.assets = assets or AssetStore()

    def save_pdf(self, schedule_id: str, filename: str, content: bytes) -> str:
        """Store the scan of a schedule, replacing any earlier upload; returns its ref"""
        if not is_valid_pdf(filename):
            raise BadRequestException(Messages.INVALID_FILE_TYPE)
        if len(content) > settings.MAX_PDF_SIZE:
            raise BadRequestException(Messages.FILE_TOO_LARGE)
        if not content.startswith(b"%PDF"):
            raise BadRequestException(f"'{filename}' is not a PDF document")

        ref = f"{schedule_id}.pdf"
        dest_path = self.uploads_dir / ref

        try:
            with open(dest_path, "wb") as buffer:
                buffer.write(content)
        except OSError as e:
            raise FileProcessingException(filename, str(e))

        logger.info(f"Uploaded scan for {schedule_id}: {filename} ({format_file_size(len(content))})")
        return ref

    def scan_path(self, pdf_ref: str) -> Path:
        if not pdf_ref:
            raise PreconditionException(Messages.PDF_NOT_UPLOADED)
        path = self.uploads_dir / pdf_ref
        if not path.exists():
            raise NotFoundException("Scan", pdf_ref)
        return path

    def remove_schedule_files(self, schedule_id: str) -> None:
        """Delete the scan and asset tree of a schedule"""
        self.assets.reset_schedule(schedule_id)
        scan = self.uploads_dir / f"{schedule_id}.pdf"
        if scan.exists():
            scan.unlink()
