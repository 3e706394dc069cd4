# Services package
from .storage import ScheduleRepository, ReferenceRepository
from .file_service import FileService, AssetStore
from .export_service import ExportService
from .pipeline_service import pipeline_service, PipelineService, get_pipeline_service

__all__ = [
    "ScheduleRepository",
    "ReferenceRepository",
    "FileService",
    "AssetStore",
    "ExportService",
    "pipeline_service",
    "PipelineService",
    "get_pipeline_service",
]
