"""
Subjective Grading Module
AI suggestions and human final scores for free-response questions
"""
import asyncio
import math
from typing import Dict, List, Optional, Tuple
import logging

from ..core.constants import PENDING_SCORE
from ..recognition.schemas import SubjectiveRequest
from .models import AISuggestion, Component, ExamLayout, Paper, StudentPaper, SubjectiveAnswer

logger = logging.getLogger(__name__)


class ScoreValidationError(ValueError):
    """Entered score is not a finite value within the question's range"""


def create_subjective_answers(
    layout: ExamLayout,
    papers: List[Paper],
    student_papers: List[StudentPaper]
) -> int:
    """
    Reset every student paper to one pending answer per free-response question.

    Returns:
        Number of answers created
    """
    components = layout.subjective_components()
    paper_by_id = {p.paper_id: p for p in papers}
    for student_paper in student_papers:
        paper = paper_by_id.get(student_paper.paper_id)
        refs = paper.question_image_refs if paper else {}
        student_paper.subjective_answers = [
            SubjectiveAnswer(
                question_id=c.id,
                question_number=c.question_number,
                image_ref=refs.get(c.id, ""),
            )
            for c in components
        ]
    return len(components) * len(student_papers)


def clamp_score(score: float, max_score: float) -> float:
    if score == PENDING_SCORE or not math.isfinite(score):
        return PENDING_SCORE
    return min(max(score, 0.0), max_score)


class SuggestionCache:
    """In-process cache of successful suggestions"""

    def __init__(self):
        self._items: Dict[Tuple[str, str, str], AISuggestion] = {}

    def get(self, schedule_id: str, paper_id: str, question_id: str) -> Optional[AISuggestion]:
        return self._items.get((schedule_id, paper_id, question_id))

    def put(self, schedule_id: str, paper_id: str, question_id: str,
            suggestion: AISuggestion) -> None:
        if suggestion.available:
            self._items[(schedule_id, paper_id, question_id)] = suggestion

    def clear(self, schedule_id: Optional[str] = None) -> None:
        if schedule_id is None:
            self._items.clear()
            return
        for key in [k for k in self._items if k[0] == schedule_id]:
            del self._items[key]

    def __len__(self) -> int:
        return len(self._items)


class SubjectiveAssistant:
    """Requests and caches grading suggestions"""

    def __init__(self, recognizer, assets, cache: Optional[SuggestionCache] = None):
        self.recognizer = recognizer
        self.assets = assets
        self.cache = cache or SuggestionCache()

    async def suggest(
        self,
        schedule_id: str,
        paper_id: str,
        component: Component,
        answer: SubjectiveAnswer
    ) -> AISuggestion:
        """
        Suggestion for one answer, requested on first access.

        A stored or cached suggestion is returned unchanged. A failed request
        (score -1) is returned but neither cached nor stored, so the next
        access asks again. Successful suggestions are written onto ``answer``.
        """
        cached = self.cache.get(schedule_id, paper_id, answer.question_id)
        if cached is not None:
            return cached
        if answer.ai_suggestion.available:
            self.cache.put(schedule_id, paper_id, answer.question_id, answer.ai_suggestion)
            return answer.ai_suggestion

        result = await self.recognizer.suggest_subjective(SubjectiveRequest(
            question_html=component.prompt_html(),
            reference_answer=component.reference_answer(),
            max_score=component.score,
            image_path=self.assets.resolve(answer.image_ref),
        ))
        suggestion = AISuggestion(
            reasoning=result.reasoning,
            ocr_result=result.ocr_result,
            suggestion=result.suggestion,
            score=clamp_score(result.score, component.score),
        )

        if suggestion.available:
            self.cache.put(schedule_id, paper_id, answer.question_id, suggestion)
            answer.ai_suggestion = suggestion
        else:
            logger.warning(
                f"[SUBJECTIVE:{schedule_id}] No suggestion for {paper_id}/{answer.question_id}"
            )
        return suggestion

    async def prefetch(
        self,
        schedule_id: str,
        layout: ExamLayout,
        student_papers: List[StudentPaper]
    ) -> int:
        """
        Request every missing suggestion concurrently.

        Returns:
            Number of answers holding a suggestion afterwards
        """
        jobs = []
        for student_paper in student_papers:
            for answer in student_paper.subjective_answers:
                component = layout.get_component(answer.question_id)
                if component is not None:
                    jobs.append(self.suggest(schedule_id, student_paper.paper_id, component, answer))

        results = await asyncio.gather(*jobs)
        available = sum(1 for s in results if s.available)
        logger.info(f"[SUBJECTIVE:{schedule_id}] Prefetched {available}/{len(results)} suggestions")
        return available


def submit_score(answer: SubjectiveAnswer, component: Component, score: float) -> SubjectiveAnswer:
    """
    Record the grader's final score.

    Raises:
        ScoreValidationError: If score is not finite or outside [0, max]
    """
    if score is None or not math.isfinite(score):
        raise ScoreValidationError(f"Score must be a finite number, got {score}")
    if score < 0 or score > component.score:
        raise ScoreValidationError(
            f"Score {score} is outside [0, {component.score}] for question '{component.id}'"
        )
    answer.score = float(score)
    answer.done = True
    return answer


def count_pending(student_papers: List[StudentPaper]) -> int:
    return sum(1 for sp in student_papers for a in sp.subjective_answers if not a.done)
