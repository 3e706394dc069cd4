"""
Reference API routes
Exam layouts and rosters pushed by the authoring tools
"""
from fastapi import APIRouter, Depends

from ezmark.grader.models import ExamLayout, Roster
from ezmark.services import PipelineService, get_pipeline_service

router = APIRouter()


@router.put("/layouts/{layout_id}", response_model=ExamLayout)
async def put_layout(
    layout_id: str,
    layout: ExamLayout,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Store an exam layout
    The path id wins over the id in the body
    """
    layout.id = layout_id
    return pipeline.references.save_layout(layout)


@router.get("/layouts/{layout_id}", response_model=ExamLayout)
async def get_layout(layout_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return pipeline.references.get_layout(layout_id)


@router.put("/rosters/{roster_id}", response_model=Roster)
async def put_roster(
    roster_id: str,
    roster: Roster,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Store a class roster
    """
    roster.id = roster_id
    return pipeline.references.save_roster(roster)


@router.get("/rosters/{roster_id}", response_model=Roster)
async def get_roster(roster_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return pipeline.references.get_roster(roster_id)
