"""
Objective Scoring Module
Reads multiple-choice answers and scores them against the layout key
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional
import logging

from ..core.constants import PENDING_SCORE, UNKNOWN
from .image_processing import CropConfig, CropError, crop_to_file
from .models import Component, ExamLayout, ObjectiveAnswer, Paper, StudentPaper

logger = logging.getLogger(__name__)


class AdjudicationError(ValueError):
    """Manual decision on an answer that is not awaiting review"""


def normalize_labels(labels: Iterable[str]) -> List[str]:
    """Trim and upper-case choice labels, dropping empties"""
    return [label.strip().upper() for label in labels if label and label.strip()]


def is_uncertain(labels: List[str]) -> bool:
    return not labels or any(label.upper() == UNKNOWN.upper() for label in labels)


def score_answer(labels: List[str], component: Component) -> float:
    """Full marks when the selected set equals the key, else zero"""
    return component.score if set(normalize_labels(labels)) == component.answer_set() else 0.0


def build_objective_answer(component: Component, labels: List[str], image_ref: str) -> ObjectiveAnswer:
    labels = normalize_labels(labels)
    if is_uncertain(labels):
        return ObjectiveAnswer(
            question_id=component.id,
            student_answer=labels,
            uncertain=True,
            score=PENDING_SCORE,
            image_ref=image_ref,
        )
    return ObjectiveAnswer(
        question_id=component.id,
        student_answer=labels,
        uncertain=False,
        score=score_answer(labels, component),
        image_ref=image_ref,
    )


class ObjectiveScorer:
    """Runs choice recognition for every objective question of every student"""

    def __init__(self, recognizer, assets, config: Optional[CropConfig] = None):
        self.recognizer = recognizer
        self.assets = assets
        self.config = config or CropConfig()

    def ensure_crop(self, schedule_id: str, paper: Paper, component: Component) -> Path:
        """
        Path of a question crop, regenerating it from the paper page if missing.

        Raises:
            CropError: If neither the crop nor its page image is available
        """
        ref = paper.question_image_refs.get(component.id)
        if ref:
            path = self.assets.resolve(ref)
            if path.exists():
                return path

        if component.position is None:
            raise CropError(f"Component '{component.id}' has no position")

        page_path = self.assets.paper_page_path(
            schedule_id, paper.paper_id, component.position.page_index
        )
        output = self.assets.question_path(schedule_id, paper.paper_id, component.id)
        logger.warning(f"[OBJECTIVE:{schedule_id}] Regenerating crop {output}")
        crop_to_file(page_path, component.position, output, self.config)
        paper.question_image_refs[component.id] = self.assets.to_ref(output)
        return output

    async def _score_one(self, schedule_id: str, paper: Paper,
                         component: Component) -> ObjectiveAnswer:
        ref = paper.question_image_refs.get(component.id, "")
        try:
            path = await asyncio.to_thread(self.ensure_crop, schedule_id, paper, component)
        except CropError as e:
            logger.error(f"[OBJECTIVE:{schedule_id}] {paper.paper_id}/{component.id}: {e}")
            return build_objective_answer(component, [], ref)

        recognition = await self.recognizer.recognize_objective(path)
        return build_objective_answer(
            component, recognition.answer, paper.question_image_refs.get(component.id, ref)
        )

    async def run(
        self,
        schedule_id: str,
        layout: ExamLayout,
        papers: List[Paper],
        student_papers: List[StudentPaper]
    ) -> int:
        """
        Fill objective answers of every student paper.

        Returns:
            Number of answers left uncertain
        """
        components = layout.objective_components()
        paper_by_id = {p.paper_id: p for p in papers}

        async def score_paper(student_paper: StudentPaper):
            paper = paper_by_id[student_paper.paper_id]
            student_paper.objective_answers = list(await asyncio.gather(
                *(self._score_one(schedule_id, paper, c) for c in components)
            ))

        await asyncio.gather(*(score_paper(sp) for sp in student_papers))

        uncertain = count_uncertain(student_papers)
        logger.info(
            f"[OBJECTIVE:{schedule_id}] Scored {len(components)} questions for "
            f"{len(student_papers)} students, {uncertain} uncertain"
        )
        return uncertain


@dataclass
class ReviewItem:
    paper_id: str
    student_id: str
    question_id: str
    student_answer: List[str]
    image_ref: str


def review_queue(layout: ExamLayout, student_papers: List[StudentPaper]) -> List[ReviewItem]:
    """Uncertain answers in paper order, then question order"""
    order = {c.id: i for i, c in enumerate(layout.components)}
    items = []
    for student_paper in sorted(student_papers, key=lambda sp: _paper_index(sp.paper_id)):
        answers = sorted(
            (a for a in student_paper.objective_answers if a.uncertain),
            key=lambda a: order.get(a.question_id, len(order))
        )
        for answer in answers:
            items.append(ReviewItem(
                paper_id=student_paper.paper_id,
                student_id=student_paper.student.student_id,
                question_id=answer.question_id,
                student_answer=list(answer.student_answer),
                image_ref=answer.image_ref,
            ))
    return items


def _paper_index(paper_id: str) -> int:
    suffix = paper_id.rsplit("-", 1)[-1]
    return int(suffix) if suffix.isdigit() else 0


def adjudicate(student_paper: StudentPaper, component: Component, correct: bool) -> ObjectiveAnswer:
    """
    Resolve an uncertain answer with full marks or zero.

    Raises:
        AdjudicationError: If the answer does not exist or is not uncertain
    """
    answer = student_paper.find_objective(component.id)
    if answer is None:
        raise AdjudicationError(
            f"No answer for question '{component.id}' on paper '{student_paper.paper_id}'"
        )
    if not answer.uncertain:
        raise AdjudicationError(
            f"Answer for question '{component.id}' on paper '{student_paper.paper_id}' "
            f"is not awaiting review"
        )
    answer.score = component.score if correct else 0.0
    answer.uncertain = False
    return answer


def count_uncertain(student_papers: List[StudentPaper]) -> int:
    return sum(1 for sp in student_papers for a in sp.objective_answers if a.uncertain)
