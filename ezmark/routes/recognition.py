"""
Recognition API routes
Provider and model information
"""
from fastapi import APIRouter, Depends

from ezmark.schemas import RecognitionStatusResponse
from ezmark.services import PipelineService, get_pipeline_service

router = APIRouter()


@router.get("/status", response_model=RecognitionStatusResponse)
def recognition_status(
    check: bool = False,
    pipeline: PipelineService = Depends(get_pipeline_service)
):
    """
    Provider and model per task
    Pass check=true to send a probe request to each model
    """
    return pipeline.recognizer.status(check=check)
