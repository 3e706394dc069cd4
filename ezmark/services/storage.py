"""
Storage Service
JSON document persistence for schedules, layouts and rosters
"""
import asyncio
import json
import os
import logging
from pathlib import Path
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..config import settings
from ..core import ConflictException, DatabaseException, NotFoundException
from ..grader.models import ExamLayout, Roster, Schedule
from ..utils import ensure_directory, utc_now

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _document_path(directory: Path, document_id: str) -> Path:
    if not document_id or "/" in document_id or "\\" in document_id or document_id.startswith("."):
        raise NotFoundException("Document", document_id)
    return directory / f"{document_id}.json"


def _read_document(path: Path, model: Type[ModelT], resource: str, document_id: str) -> ModelT:
    if not path.exists():
        raise NotFoundException(resource, document_id)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return model.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Corrupt {resource} document {path}: {e}")
        raise DatabaseException(f"read {resource} '{document_id}'", str(e))


def _write_document(path: Path, document: BaseModel) -> None:
    tmp_path = path.with_suffix(".json.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(document.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


class ScheduleRepository:
    """
    Schedule documents with optimistic concurrency.

    Every successful write increments ``version``. ``save`` only succeeds
    when the stored version still equals the version the caller read.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = ensure_directory(directory or settings.SCHEDULES_DIR)
        self._lock = asyncio.Lock()

    def _path(self, schedule_id: str) -> Path:
        return _document_path(self.directory, schedule_id)

    def _stored_version(self, schedule_id: str) -> Optional[int]:
        path = self._path(schedule_id)
        if not path.exists():
            return None
        return _read_document(path, Schedule, "Schedule", schedule_id).version

    async def create(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            if self._path(schedule.id).exists():
                raise ConflictException("Schedule", schedule.id, 0, schedule.version)
            now = utc_now()
            schedule.version = 1
            schedule.created_at = schedule.created_at or now
            schedule.updated_at = now
            _write_document(self._path(schedule.id), schedule)
        logger.info(f"Created schedule {schedule.id}")
        return schedule

    async def get(self, schedule_id: str) -> Schedule:
        return _read_document(self._path(schedule_id), Schedule, "Schedule", schedule_id)

    async def list_all(self) -> List[Schedule]:
        schedules = []
        for path in sorted(self.directory.glob("*.json")):
            schedules.append(_read_document(path, Schedule, "Schedule", path.stem))
        return sorted(schedules, key=lambda s: s.created_at)

    async def save(self, schedule: Schedule, expected_version: int) -> Schedule:
        """
        Compare-and-swap write.

        Raises:
            NotFoundException: If the schedule was deleted
            ConflictException: If another writer saved first
        """
        async with self._lock:
            stored = self._stored_version(schedule.id)
            if stored is None:
                raise NotFoundException("Schedule", schedule.id)
            if stored != expected_version:
                raise ConflictException("Schedule", schedule.id, expected_version, stored)
            schedule.version = expected_version + 1
            schedule.updated_at = utc_now()
            _write_document(self._path(schedule.id), schedule)
        return schedule

    async def delete(self, schedule_id: str) -> bool:
        async with self._lock:
            path = self._path(schedule_id)
            if not path.exists():
                raise NotFoundException("Schedule", schedule_id)
            path.unlink()
        logger.info(f"Deleted schedule {schedule_id}")
        return True


class ReferenceRepository:
    """Exam layouts and rosters supplied by the authoring tools"""

    def __init__(self, directory: Optional[Path] = None):
        root = Path(directory or settings.REFERENCES_DIR)
        self.layouts_dir = ensure_directory(root / "layouts")
        self.rosters_dir = ensure_directory(root / "rosters")

    def save_layout(self, layout: ExamLayout) -> ExamLayout:
        _write_document(_document_path(self.layouts_dir, layout.id), layout)
        logger.info(f"Saved layout {layout.id} ({len(layout.components)} components)")
        return layout

    def get_layout(self, layout_id: str) -> ExamLayout:
        return _read_document(
            _document_path(self.layouts_dir, layout_id), ExamLayout, "Layout", layout_id
        )

    def save_roster(self, roster: Roster) -> Roster:
        _write_document(_document_path(self.rosters_dir, roster.id), roster)
        logger.info(f"Saved roster {roster.id} ({len(roster.students)} students)")
        return roster

    def get_roster(self, roster_id: str) -> Roster:
        return _read_document(
            _document_path(self.rosters_dir, roster_id), Roster, "Roster", roster_id
        )
