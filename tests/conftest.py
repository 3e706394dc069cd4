"""
Shared fixtures: fake recognizer and rasterizer, layout, roster and a
pipeline service rooted in a temporary directory
"""
import asyncio
from collections import defaultdict
from pathlib import Path

import numpy as np
import pytest

from ezmark.core.constants import UNKNOWN
from ezmark.grader.models import ExamLayout, Roster
from ezmark.recognition.schemas import (
    HeaderRecognition,
    ObjectiveRecognition,
    SubjectiveSuggestion,
)
from ezmark.services.export_service import ExportService
from ezmark.services.file_service import AssetStore, FileService
from ezmark.services.pipeline_service import PipelineService
from ezmark.services.storage import ReferenceRepository, ScheduleRepository

PDF_BYTES = b"%PDF-1.4\n% fake scan\n"

# 1 pixel per millimetre on A4
PAGE_WIDTH = 210
PAGE_HEIGHT = 297

LAYOUT = {
    "id": "layout-midterm",
    "title": "Biology Midterm",
    "components": [
        {
            "id": "header",
            "type": "default-header",
            "position": {"page_index": 0, "top": 10, "left": 10, "width": 100, "height": 20},
        },
        {
            "id": "q1",
            "type": "multiple-choice",
            "question_number": 1,
            "question": "<p>Which organelle makes ATP?</p>",
            "score": 5,
            "answer": ["B"],
            "position": {"page_index": 0, "top": 50, "left": 10, "width": 150, "height": 30},
        },
        {
            "id": "rule",
            "type": "divider",
            "position": {"page_index": 0, "top": 90, "left": 10, "width": 190, "height": 2},
        },
        {
            "id": "q2",
            "type": "open",
            "question_number": 2,
            "content": "<p>Explain photosynthesis.</p>",
            "score": 10,
            "answer": "Light energy is converted into chemical energy.",
            "position": {"page_index": 1, "top": 20, "left": 10, "width": 180, "height": 60},
        },
    ],
}

ROSTER = {
    "id": "roster-bio",
    "name": "Biology 101",
    "students": [
        {"student_id": "S001", "name": "Alice", "document_id": "doc-alice"},
        {"student_id": "S002", "name": "Bob", "document_id": "doc-bob"},
    ],
}


def crop_key(image_path):
    """(paper_id, component_id) of a crop path .../{paper}/questions/{component}.png"""
    path = Path(image_path)
    return path.parent.parent.name, path.stem


class FakeRasterizer:
    """Renders white A4 pages with a dark band so crops are not uniform"""

    def __init__(self, page_count=4, width=PAGE_WIDTH, height=PAGE_HEIGHT, failures=0):
        self.pages = page_count
        self.width = width
        self.height = height
        self.failures = failures
        self.render_calls = 0

    def page_count(self, pdf_path):
        return self.pages

    def render_pages(self, pdf_path):
        self.render_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("renderer crashed")
        pages = []
        for n in range(self.pages):
            page = np.full((self.height, self.width, 3), 255, dtype=np.uint8)
            page[n:n + 5, :, :] = 0
            pages.append(page)
        return pages


class FakeRecognitionService:
    """Answers from lookup tables keyed by (paper_id, component_id)"""

    def __init__(self, headers=None, objective=None, subjective=None):
        self.headers = headers or {}
        self.objective = objective or {}
        self.subjective = subjective or {}
        self.calls = defaultdict(int)
        self.gate = None

    async def _wait_gate(self):
        if self.gate is not None:
            await self.gate.wait()

    async def recognize_header(self, image_path):
        self.calls["header"] += 1
        await self._wait_gate()
        paper_id, _ = crop_key(image_path)
        name, student_id = self.headers.get(paper_id, (UNKNOWN, UNKNOWN))
        return HeaderRecognition(reason="fake", name=name, student_id=student_id)

    async def recognize_objective(self, image_path):
        self.calls["objective"] += 1
        await self._wait_gate()
        return ObjectiveRecognition(
            reason="fake", answer=self.objective.get(crop_key(image_path), [UNKNOWN])
        )

    async def suggest_subjective(self, request):
        self.calls["subjective"] += 1
        await self._wait_gate()
        score = self.subjective.get(crop_key(request.image_path), -1)
        if score == -1:
            return SubjectiveSuggestion.unavailable("fake failure")
        return SubjectiveSuggestion(
            reasoning="matches the reference",
            ocr_result="plants turn light into sugar",
            suggestion="mostly correct",
            score=score,
        )

    def status(self, check=False):
        return {"provider": "fake", "concurrency": 1, "tasks": {}}


def make_service(root: Path, recognizer=None, rasterizer=None, **kwargs) -> PipelineService:
    """Pipeline service whose every directory lives under root"""
    references = ReferenceRepository(root / "references")
    references.save_layout(ExamLayout.model_validate(LAYOUT))
    references.save_roster(Roster.model_validate(ROSTER))
    return PipelineService(
        repository=ScheduleRepository(root / "schedules"),
        references=references,
        files=FileService(uploads_dir=root / "uploads", assets=AssetStore(root / "assets")),
        recognizer=recognizer or FakeRecognitionService(),
        rasterizer=rasterizer or FakeRasterizer(),
        exporter=ExportService(root / "exports"),
        **kwargs
    )


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def layout():
    return ExamLayout.model_validate(LAYOUT)


@pytest.fixture
def roster():
    return Roster.model_validate(ROSTER)


@pytest.fixture
def assets(tmp_path):
    return AssetStore(tmp_path / "assets")


@pytest.fixture
def matching_recognizer():
    """Both headers readable, student-1 picks B, student-2 picks C"""
    return FakeRecognitionService(
        headers={"student-1": ("Alice", "S001"), "student-2": ("Bob", " S002 ")},
        objective={("student-1", "q1"): ["b"], ("student-2", "q1"): ["C"]},
        subjective={("student-1", "q2"): 7, ("student-2", "q2"): 9},
    )
