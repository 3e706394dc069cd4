# Core package
from .constants import (
    Progress,
    Stage,
    JobStatus,
    ComponentType,
    Messages,
    OBJECTIVE_TYPES,
    SUBJECTIVE_TYPES,
    QUESTION_TYPES,
    LAYOUT_ONLY_TYPES,
    UNKNOWN,
    PENDING_SCORE,
)
from .exceptions import (
    BaseAPIException,
    NotFoundException,
    BadRequestException,
    PreconditionException,
    ConflictException,
    FileProcessingException,
    DatabaseException,
    RecognitionException,
)
from .logger import setup_logger, pipeline_logger, recognition_logger

__all__ = [
    # Constants
    "Progress",
    "Stage",
    "JobStatus",
    "ComponentType",
    "Messages",
    "OBJECTIVE_TYPES",
    "SUBJECTIVE_TYPES",
    "QUESTION_TYPES",
    "LAYOUT_ONLY_TYPES",
    "UNKNOWN",
    "PENDING_SCORE",
    # Exceptions
    "BaseAPIException",
    "NotFoundException",
    "BadRequestException",
    "PreconditionException",
    "ConflictException",
    "FileProcessingException",
    "DatabaseException",
    "RecognitionException",
    # Logging
    "setup_logger",
    "pipeline_logger",
    "recognition_logger",
]
