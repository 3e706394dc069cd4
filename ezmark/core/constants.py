"""
Application constants
"""
from enum import Enum


class Progress(str, Enum):
    """Pipeline progress states, in order"""
    CREATED = "CREATED"
    UPLOADED = "UPLOADED"
    MATCH_START = "MATCH_START"
    MATCH_DONE = "MATCH_DONE"
    OBJECTIVE_START = "OBJECTIVE_START"
    OBJECTIVE_DONE = "OBJECTIVE_DONE"
    SUBJECTIVE_START = "SUBJECTIVE_START"
    SUBJECTIVE_DONE = "SUBJECTIVE_DONE"
    RESULT_START = "RESULT_START"
    RESULT_DONE = "RESULT_DONE"
    
    @property
    def rank(self) -> int:
        return PROGRESS_ORDER.index(self)


PROGRESS_ORDER = list(Progress)


class Stage(str, Enum):
    """Background stages and the progress values that bracket them"""
    MATCH = "MATCH"
    OBJECTIVE = "OBJECTIVE"
    SUBJECTIVE = "SUBJECTIVE"
    RESULT = "RESULT"
    
    @property
    def start_progress(self) -> Progress:
        return Progress(f"{self.value}_START")
    
    @property
    def done_progress(self) -> Progress:
        return Progress(f"{self.value}_DONE")


class JobStatus(str, Enum):
    """Lifecycle of a stage job record"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ComponentType(str, Enum):
    """Exam layout component types"""
    HEADER = "default-header"
    MULTIPLE_CHOICE = "multiple-choice"
    FILL_IN_BLANK = "fill-in-blank"
    OPEN = "open"
    BLANK = "blank"
    DIVIDER = "divider"


OBJECTIVE_TYPES = {ComponentType.MULTIPLE_CHOICE.value}
SUBJECTIVE_TYPES = {ComponentType.FILL_IN_BLANK.value, ComponentType.OPEN.value}
QUESTION_TYPES = OBJECTIVE_TYPES | SUBJECTIVE_TYPES
LAYOUT_ONLY_TYPES = {ComponentType.BLANK.value, ComponentType.DIVIDER.value}

# Sentinels
UNKNOWN = "Unknown"
PENDING_SCORE = -1


# API Response Messages
class Messages:
    """API response messages"""
    
    PDF_UPLOAD_SUCCESS = "Exam scan uploaded"
    MATCHING_STARTED = "Matching has been started for document ID {}"
    OBJECTIVE_STARTED = "Objective has been started for document ID {}"
    SUBJECTIVE_STARTED = "Subjective has been started for document ID {}"
    RESULT_STARTED = "Result has been calculated for document ID {}"
    STAGE_ALREADY_RUNNING = "Stage {} is already running for document ID {}"
    STAGE_CANCELLED = "Stage {} cancelled for document ID {}"
    
    PDF_NOT_UPLOADED = "No exam scan has been uploaded for this schedule"
    INVALID_FILE_TYPE = "File must be a PDF"
    FILE_TOO_LARGE = "File size exceeds limit"
