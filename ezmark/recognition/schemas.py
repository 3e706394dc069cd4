"""
Structured-output contracts of the recognition models.

Field order is generation order: the model writes its reasoning before the
answer fields.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..core.constants import PENDING_SCORE, UNKNOWN


class HeaderRecognition(BaseModel):
    """Handwritten identity read from an exam header"""
    model_config = ConfigDict(populate_by_name=True)

    reason: str = Field(description="Why the fields were read this way")
    name: str = Field(description='Student name, or "Unknown"')
    student_id: str = Field(alias="studentId", description='Student ID, or "Unknown"')

    @classmethod
    def unknown(cls, reason: str = "") -> "HeaderRecognition":
        return cls(reason=reason, name=UNKNOWN, student_id=UNKNOWN)


class ObjectiveRecognition(BaseModel):
    """Choice labels selected on a multiple-choice crop"""
    reason: str = Field(description="Description of the marks that were found")
    answer: List[str] = Field(description='Selected option labels, or ["Unknown"]')

    @classmethod
    def unknown(cls, reason: str = "") -> "ObjectiveRecognition":
        return cls(reason=reason, answer=[UNKNOWN])


class SubjectiveSuggestion(BaseModel):
    """Grading suggestion for a free-response crop"""
    model_config = ConfigDict(populate_by_name=True)

    reasoning: str = Field(description="Assessment against the reference answer")
    ocr_result: str = Field(alias="ocrResult", description="Transcribed handwriting")
    suggestion: str = Field(description="Feedback for the grader")
    score: float = Field(description="Suggested score between 0 and the maximum")

    @classmethod
    def unavailable(cls, reason: str = "") -> "SubjectiveSuggestion":
        return cls(
            reasoning=reason or UNKNOWN,
            ocr_result=UNKNOWN,
            suggestion="Failed to generate a suggestion",
            score=PENDING_SCORE,
        )


@dataclass
class SubjectiveRequest:
    """Inputs of one subjective suggestion"""
    question_html: str
    reference_answer: str
    max_score: float
    image_path: Path
