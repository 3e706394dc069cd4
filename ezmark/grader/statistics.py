"""
Statistics Module
Totals per student and score distribution per exam and per question
"""
import math
from typing import List

from ..core.constants import PENDING_SCORE
from .models import ExamLayout, QuestionStatistics, ScoreSummary, Statistics, StudentPaper


class IncompleteScoresError(ValueError):
    """A score is still pending when totals are computed"""


def summarize(scores: List[float]) -> ScoreSummary:
    """
    Mean, extremes, median and population standard deviation.

    The median is the upper-middle element for an even count.
    """
    if not scores:
        return ScoreSummary()

    n = len(scores)
    ordered = sorted(scores)
    average = sum(scores) / n
    variance = sum((s - average) ** 2 for s in scores) / n

    return ScoreSummary(
        average=average,
        highest=ordered[-1],
        lowest=ordered[0],
        median=ordered[n // 2],
        standard_deviation=math.sqrt(variance),
    )


def compute_totals(student_papers: List[StudentPaper]) -> List[float]:
    """Set and return total_score of every student paper"""
    for student_paper in student_papers:
        answers = student_paper.objective_answers + student_paper.subjective_answers
        pending = [a.question_id for a in answers if a.score == PENDING_SCORE]
        if pending:
            raise IncompleteScoresError(
                f"Paper '{student_paper.paper_id}' has pending scores: {', '.join(pending)}"
            )

    totals = []
    for student_paper in student_papers:
        total = sum(a.score for a in student_paper.objective_answers)
        total += sum(a.score for a in student_paper.subjective_answers)
        student_paper.total_score = total
        totals.append(total)
    return totals


def _question_scores(student_papers: List[StudentPaper], question_id: str) -> List[float]:
    scores = []
    for student_paper in student_papers:
        answer = (student_paper.find_objective(question_id)
                  or student_paper.find_subjective(question_id))
        if answer is not None:
            scores.append(answer.score)
    return scores


def compute_statistics(layout: ExamLayout, student_papers: List[StudentPaper]) -> Statistics:
    """
    Compute totals, then corpus and per-question statistics.

    Raises:
        IncompleteScoresError: If any answer is still pending
    """
    totals = compute_totals(student_papers)
    overall = summarize(totals)

    questions = []
    for component in layout.question_components():
        scores = _question_scores(student_papers, component.id)
        summary = summarize(scores)
        correct = incorrect = None
        if component.is_objective:
            correct = sum(1 for s in scores if s == component.score)
            incorrect = len(scores) - correct
        questions.append(QuestionStatistics(
            question_id=component.id,
            correct=correct,
            incorrect=incorrect,
            **summary.model_dump(),
        ))

    return Statistics(questions=questions, **overall.model_dump())
