"""
Grader Module
Scan decomposition, identity matching, scoring and statistics
"""

from .models import (
    Component,
    ExamLayout,
    Paper,
    Roster,
    Schedule,
    StudentPaper,
)
from .image_processing import CropConfig, CropError, compute_crop_box, mm_to_pixels
from .decomposition import PaperDecomposer, PdfRasterizer, ScanValidationError, validate_scan
from .matching import MatchingEngine, ReconciliationError, connect, disconnect, finalize_matching
from .objective import AdjudicationError, ObjectiveScorer, adjudicate, review_queue
from .subjective import ScoreValidationError, SubjectiveAssistant, SuggestionCache, submit_score
from .statistics import IncompleteScoresError, compute_statistics, summarize

__all__ = [
    "Component",
    "ExamLayout",
    "Paper",
    "Roster",
    "Schedule",
    "StudentPaper",
    "CropConfig",
    "CropError",
    "compute_crop_box",
    "mm_to_pixels",
    "PaperDecomposer",
    "PdfRasterizer",
    "ScanValidationError",
    "validate_scan",
    "MatchingEngine",
    "ReconciliationError",
    "connect",
    "disconnect",
    "finalize_matching",
    "AdjudicationError",
    "ObjectiveScorer",
    "adjudicate",
    "review_queue",
    "ScoreValidationError",
    "SubjectiveAssistant",
    "SuggestionCache",
    "submit_score",
    "IncompleteScoresError",
    "compute_statistics",
    "summarize",
]
