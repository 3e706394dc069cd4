"""
Schedule API routes
Grading run lifecycle, scan upload and stage control
"""
from fastapi import APIRouter, Depends, File, UploadFile

from ezmark.core import Messages
from ezmark.grader.models import Schedule, StageJob
from ezmark.schemas import (
    CreateScheduleRequest,
    JobResponse,
    ScheduleListResponse,
    ScheduleSummary,
    StageAck,
    UploadResponse,
)
from ezmark.services import PipelineService, get_pipeline_service

router = APIRouter()


@router.post("", response_model=Schedule)
async def create_schedule(
    request: CreateScheduleRequest,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Create an empty grading run for a layout and roster
    """
    return await pipeline.create_schedule(request.name, request.layout_id, request.roster_id)


@router.get("", response_model=ScheduleListResponse)
async def list_schedules(pipeline: PipelineService = Depends(get_pipeline_service)):
    schedules = await pipeline.list_schedules()
    return ScheduleListResponse(
        schedules=[ScheduleSummary.from_schedule(s) for s in schedules],
        total=len(schedules)
    )


@router.get("/{schedule_id}", response_model=Schedule)
async def get_schedule(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return await pipeline.get_schedule(schedule_id)


@router.delete("/{schedule_id}")
async def delete_schedule(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    """
    Delete a grading run together with its scan and images
    """
    await pipeline.delete_schedule(schedule_id)
    return {"success": True, "message": f"Schedule {schedule_id} deleted"}


@router.post("/{schedule_id}/upload", response_model=UploadResponse)
async def upload_scan(
    schedule_id: str,
    file: UploadFile = File(...),
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Upload the multi-student exam scan (PDF)
    """
    content = await file.read()
    schedule = await pipeline.upload_pdf(schedule_id, file.filename or "", content)
    return UploadResponse(
        success=True,
        message=Messages.PDF_UPLOAD_SUCCESS,
        pdf_ref=schedule.result.pdf_ref,
        progress=schedule.progress.value
    )


# ===== Stage triggers =====
@router.post("/{schedule_id}/startMatching", response_model=StageAck)
async def start_matching(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return await pipeline.start_matching(schedule_id)


@router.post("/{schedule_id}/startObjective", response_model=StageAck)
async def start_objective(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return await pipeline.start_objective(schedule_id)


@router.post("/{schedule_id}/startSubjective", response_model=StageAck)
async def start_subjective(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return await pipeline.start_subjective(schedule_id)


@router.post("/{schedule_id}/startResult", response_model=StageAck)
async def start_result(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return await pipeline.start_result(schedule_id)


# ===== Job control =====
@router.get("/{schedule_id}/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    schedule_id: str,
    job_id: str,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    job = await pipeline.get_job(schedule_id, job_id)
    schedule = await pipeline.get_schedule(schedule_id)
    return JobResponse(schedule_id=schedule_id, progress=schedule.progress.value, job=job)


@router.post("/{schedule_id}/retry", response_model=StageAck)
async def retry_stage(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    """
    Relaunch the stage whose latest job failed or was cancelled
    """
    return await pipeline.retry(schedule_id)


@router.post("/{schedule_id}/cancel", response_model=StageJob)
async def cancel_stage(schedule_id: str, pipeline: PipelineService = Depends(get_pipeline_service)):
    return await pipeline.cancel(schedule_id)
