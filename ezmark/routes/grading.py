"""
Grading API routes
Manual reconciliation, adjudication, subjective scoring and results
"""
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from ezmark.grader.models import MatchResult, ObjectiveAnswer, SubjectiveAnswer
from ezmark.schemas import (
    AdjudicateRequest,
    ConnectRequest,
    ReviewItemResponse,
    ReviewQueueResponse,
    ScoreRequest,
    StatisticsResponse,
    SuggestionRequest,
    SuggestionResponse,
)
from ezmark.services import PipelineService, get_pipeline_service

router = APIRouter()

ASSET_URL_PREFIX = "/static/pipeline"


# ===== Matching =====
@router.post("/{schedule_id}/matching/connect", response_model=MatchResult)
async def connect_paper(
    schedule_id: str,
    request: ConnectRequest,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Pair an unmatched paper with an unmatched student
    """
    return await pipeline.connect(schedule_id, request.paper_id, request.student_id)


@router.post("/{schedule_id}/matching/disconnect", response_model=MatchResult)
async def disconnect_paper(
    schedule_id: str,
    request: ConnectRequest,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Undo a pairing, returning both sides to the unmatched pools
    """
    return await pipeline.disconnect(schedule_id, request.paper_id, request.student_id)


# ===== Objective =====
@router.get("/{schedule_id}/objective/review", response_model=ReviewQueueResponse)
async def get_review_queue(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    """
    Multiple-choice answers the recognizer could not read
    """
    queue = await pipeline.review_queue(schedule_id)
    items = [
        ReviewItemResponse(
            paper_id=item.paper_id,
            student_id=item.student_id,
            question_id=item.question_id,
            student_answer=item.student_answer,
            image_ref=item.image_ref,
            image_url=f"{ASSET_URL_PREFIX}/{item.image_ref}" if item.image_ref else "",
        )
        for item in queue
    ]
    return ReviewQueueResponse(items=items, total=len(items), next=items[0] if items else None)


@router.post("/{schedule_id}/objective/adjudicate", response_model=ObjectiveAnswer)
async def adjudicate_answer(
    schedule_id: str,
    request: AdjudicateRequest,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    return await pipeline.adjudicate(
        schedule_id, request.paper_id, request.question_id, request.correct
    )


# ===== Subjective =====
@router.post("/{schedule_id}/subjective/suggestion", response_model=SuggestionResponse)
async def get_suggestion(
    schedule_id: str,
    request: SuggestionRequest,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    AI grading suggestion for one answer, requested on first access
    """
    suggestion = await pipeline.get_suggestion(schedule_id, request.paper_id, request.question_id)
    return SuggestionResponse(
        paper_id=request.paper_id,
        question_id=request.question_id,
        suggestion=suggestion,
        available=suggestion.available
    )


@router.post("/{schedule_id}/subjective/score", response_model=SubjectiveAnswer)
async def submit_score(
    schedule_id: str,
    request: ScoreRequest,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    return await pipeline.submit_score(
        schedule_id, request.paper_id, request.question_id, request.score
    )


# ===== Results =====
@router.get("/{schedule_id}/statistics", response_model=StatisticsResponse)
async def get_statistics(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    statistics, student_papers = await pipeline.get_statistics(schedule_id)
    return StatisticsResponse(
        schedule_id=schedule_id,
        statistics=statistics,
        totals={sp.student.student_id: sp.total_score for sp in student_papers}
    )


@router.get("/{schedule_id}/export")
async def export_results(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    """
    Download results as an Excel workbook
    """
    path = await pipeline.export_results(schedule_id)
    return FileResponse(
        path,
        filename=path.name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
