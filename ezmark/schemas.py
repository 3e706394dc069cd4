"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Optional, Any

from .grader.models import AISuggestion, Schedule, StageJob, Statistics


# ===== Schedule Schemas =====
class CreateScheduleRequest(BaseModel):
    name: str = Field(default="", description="Display name of the grading run")
    layout_id: str = Field(..., description="Exam layout id")
    roster_id: str = Field(..., description="Roster id")


class ScheduleSummary(BaseModel):
    id: str
    name: str
    layout_id: str
    roster_id: str
    progress: str
    version: int
    created_at: str
    updated_at: str

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleSummary":
        return cls(
            id=schedule.id,
            name=schedule.name,
            layout_id=schedule.layout_id,
            roster_id=schedule.roster_id,
            progress=schedule.progress.value,
            version=schedule.version,
            created_at=schedule.created_at,
            updated_at=schedule.updated_at,
        )


class ScheduleListResponse(BaseModel):
    schedules: List[ScheduleSummary]
    total: int


# ===== Upload Schemas =====
class UploadResponse(BaseModel):
    success: bool
    message: str
    pdf_ref: str
    progress: str


# ===== Stage Schemas =====
class StageAck(BaseModel):
    """Acknowledgement returned as soon as a stage has been launched"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    document_id: str = Field(..., alias="documentId")
    job_id: str


class JobResponse(BaseModel):
    schedule_id: str
    progress: str
    job: StageJob


# ===== Matching Schemas =====
class ConnectRequest(BaseModel):
    paper_id: str
    student_id: str


# ===== Objective Schemas =====
class ReviewItemResponse(BaseModel):
    paper_id: str
    student_id: str
    question_id: str
    student_answer: List[str] = []
    image_ref: str
    image_url: str


class ReviewQueueResponse(BaseModel):
    items: List[ReviewItemResponse]
    total: int
    next: Optional[ReviewItemResponse] = None


class AdjudicateRequest(BaseModel):
    paper_id: str
    question_id: str
    correct: bool


# ===== Subjective Schemas =====
class SuggestionRequest(BaseModel):
    paper_id: str
    question_id: str


class SuggestionResponse(BaseModel):
    paper_id: str
    question_id: str
    suggestion: AISuggestion
    available: bool


class ScoreRequest(BaseModel):
    paper_id: str
    question_id: str
    score: float


# ===== Result Schemas =====
class StatisticsResponse(BaseModel):
    schedule_id: str
    statistics: Statistics
    totals: Dict[str, Optional[float]] = {}


class RecognitionStatusResponse(BaseModel):
    provider: str
    concurrency: int
    tasks: Dict[str, Dict[str, Any]]
