"""
Pipeline Data Model
Persisted shape of a grading run and the external layout/roster documents
"""
from typing import Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.constants import (
    ComponentType,
    JobStatus,
    Progress,
    Stage,
    LAYOUT_ONLY_TYPES,
    OBJECTIVE_TYPES,
    PENDING_SCORE,
    QUESTION_TYPES,
    SUBJECTIVE_TYPES,
)


# ===== Exam layout (external, read-only) =====
class Position(BaseModel):
    """Component rectangle in millimetres on an A4 page"""
    page_index: int = Field(..., ge=0)
    top: float = 0.0
    left: float = 0.0
    width: float
    height: float


class ChoiceOption(BaseModel):
    label: str
    content: str = ""


class Component(BaseModel):
    """One question or structural block of an exam layout"""
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    position: Optional[Position] = None
    score: float = Field(0.0, ge=0)
    question_number: Optional[int] = None
    question: Optional[str] = None  # multiple-choice prompt (HTML)
    content: Optional[str] = None   # fill-in-blank / open prompt (HTML)
    options: List[ChoiceOption] = []
    answer: Union[List[str], str, None] = None

    @property
    def is_question(self) -> bool:
        return self.type in QUESTION_TYPES

    @property
    def is_objective(self) -> bool:
        return self.type in OBJECTIVE_TYPES

    @property
    def is_subjective(self) -> bool:
        return self.type in SUBJECTIVE_TYPES

    @property
    def is_croppable(self) -> bool:
        return self.position is not None and self.type not in LAYOUT_ONLY_TYPES

    def answer_set(self) -> Set[str]:
        """Defined correct choice labels, normalized"""
        if self.answer is None:
            return set()
        labels = [self.answer] if isinstance(self.answer, str) else self.answer
        return {label.strip().upper() for label in labels if label and label.strip()}

    def prompt_html(self) -> str:
        return self.question or self.content or ""

    def reference_answer(self) -> str:
        if isinstance(self.answer, list):
            return ", ".join(self.answer)
        return self.answer or ""


class ExamLayout(BaseModel):
    """Exam definition produced by the authoring editor"""
    id: str
    title: str = ""
    components: List[Component] = []

    @property
    def pages_per_exam(self) -> int:
        indices = [c.position.page_index for c in self.components if c.position is not None]
        return max(indices) + 1 if indices else 0

    def get_component(self, component_id: str) -> Optional[Component]:
        for component in self.components:
            if component.id == component_id:
                return component
        return None

    def header_component(self) -> Optional[Component]:
        for component in self.components:
            if component.type == ComponentType.HEADER.value:
                return component
        return None

    def question_components(self) -> List[Component]:
        return [c for c in self.components if c.is_question]

    def objective_components(self) -> List[Component]:
        return [c for c in self.components if c.is_objective]

    def subjective_components(self) -> List[Component]:
        return [c for c in self.components if c.is_subjective]

    def components_on_page(self, page_index: int) -> List[Component]:
        """Croppable components on a page, top-to-bottom then left-to-right"""
        on_page = [
            c for c in self.components
            if c.is_croppable and c.position.page_index == page_index
        ]
        return sorted(on_page, key=lambda c: (c.position.top, c.position.left))


# ===== Roster (external, read-only) =====
class RosterStudent(BaseModel):
    student_id: str
    name: str
    document_id: str = ""


class Roster(BaseModel):
    """Ordered class list"""
    id: str
    name: str = ""
    students: List[RosterStudent] = []

    @field_validator("students")
    @classmethod
    def unique_student_ids(cls, students: List[RosterStudent]) -> List[RosterStudent]:
        seen = set()
        for student in students:
            key = student.student_id.strip()
            if key in seen:
                raise ValueError(f"Duplicate student_id '{key}' in roster")
            seen.add(key)
        return students

    def find(self, student_id: str) -> Optional[RosterStudent]:
        for student in self.students:
            if student.student_id == student_id:
                return student
        return None


# ===== Papers and grading records =====
class Paper(BaseModel):
    """Scanned pages of one student slot"""
    paper_id: str
    start_page: int
    end_page: int
    name: str = ""
    student_id: str = ""
    student_document_id: str = ""
    header_image_ref: str = ""
    question_image_refs: Dict[str, str] = {}


class StudentIdentity(BaseModel):
    student_id: str
    name: str
    document_id: str = ""


class ObjectiveAnswer(BaseModel):
    question_id: str
    student_answer: List[str] = []
    uncertain: bool = False
    score: float = PENDING_SCORE
    image_ref: str = ""


class AISuggestion(BaseModel):
    reasoning: str = ""
    ocr_result: str = ""
    suggestion: str = ""
    score: float = PENDING_SCORE

    @property
    def available(self) -> bool:
        return self.score != PENDING_SCORE


class SubjectiveAnswer(BaseModel):
    question_id: str
    question_number: Optional[int] = None
    image_ref: str = ""
    ai_suggestion: AISuggestion = Field(default_factory=AISuggestion)
    score: float = PENDING_SCORE
    done: bool = False


class StudentPaper(BaseModel):
    """Logical grading record of one student"""
    student: StudentIdentity
    paper_id: str
    objective_answers: List[ObjectiveAnswer] = []
    subjective_answers: List[SubjectiveAnswer] = []
    total_score: Optional[float] = None

    def find_objective(self, question_id: str) -> Optional[ObjectiveAnswer]:
        for answer in self.objective_answers:
            if answer.question_id == question_id:
                return answer
        return None

    def find_subjective(self, question_id: str) -> Optional[SubjectiveAnswer]:
        for answer in self.subjective_answers:
            if answer.question_id == question_id:
                return answer
        return None


# ===== Matching =====
class MatchedPair(BaseModel):
    student_id: str
    paper_id: str
    header_image_ref: str = ""


class UnmatchedPaper(BaseModel):
    paper_id: str
    header_image_ref: str = ""


class Unmatched(BaseModel):
    student_ids: List[str] = []
    papers: List[UnmatchedPaper] = []


class MatchResult(BaseModel):
    matched: List[MatchedPair] = []
    unmatched: Unmatched = Field(default_factory=Unmatched)
    done: bool = False

    def refresh_done(self) -> bool:
        self.done = not self.unmatched.papers and not self.unmatched.student_ids
        return self.done


# ===== Statistics =====
class ScoreSummary(BaseModel):
    average: float = 0.0
    highest: float = 0.0
    lowest: float = 0.0
    median: float = 0.0
    standard_deviation: float = 0.0


class QuestionStatistics(ScoreSummary):
    question_id: str
    correct: Optional[int] = None    # objective questions only
    incorrect: Optional[int] = None


class Statistics(ScoreSummary):
    questions: List[QuestionStatistics] = []


# ===== Schedule =====
class StageError(BaseModel):
    stage: Stage
    message: str
    details: Optional[str] = None
    timestamp: str


class StageJob(BaseModel):
    job_id: str
    stage: Stage
    status: JobStatus = JobStatus.PENDING
    started_at: str
    finished_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.RUNNING)


class ScheduleResult(BaseModel):
    progress: Progress = Progress.CREATED
    pdf_ref: str = ""
    papers: List[Paper] = []
    student_papers: List[StudentPaper] = []
    match_result: MatchResult = Field(default_factory=MatchResult)
    statistics: Optional[Statistics] = None
    error: Optional[StageError] = None


class Schedule(BaseModel):
    """One grading run"""
    id: str
    name: str = ""
    layout_id: str
    roster_id: str
    result: ScheduleResult = Field(default_factory=ScheduleResult)
    version: int = 0
    jobs: List[StageJob] = []
    created_at: str = ""
    updated_at: str = ""

    @property
    def progress(self) -> Progress:
        return self.result.progress

    def latest_job(self, stage: Optional[Stage] = None) -> Optional[StageJob]:
        for job in reversed(self.jobs):
            if stage is None or job.stage == stage:
                return job
        return None

    def find_job(self, job_id: str) -> Optional[StageJob]:
        for job in self.jobs:
            if job.job_id == job_id:
                return job
        return None

    def find_paper(self, paper_id: str) -> Optional[Paper]:
        for paper in self.result.papers:
            if paper.paper_id == paper_id:
                return paper
        return None

    def find_student_paper(self, paper_id: str) -> Optional[StudentPaper]:
        for student_paper in self.result.student_papers:
            if student_paper.paper_id == paper_id:
                return student_paper
        return None
