# Routes package
from . import grading, recognition, references, schedules

__all__ = ["grading", "recognition", "references", "schedules"]
