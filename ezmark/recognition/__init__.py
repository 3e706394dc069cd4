"""
Recognition Module
==================
Vision-model client for header, multiple-choice and free-response crops.

Usage:
    from ezmark.recognition import RecognitionService

    service = RecognitionService()
    header = await service.recognize_header("questions/header.png")
"""

from .config import RecognitionConfig, recognition_config
from .llm_providers import (
    BaseVisionLLM,
    LLMFactory,
    LLMProvider,
    OllamaVisionLLM,
    OpenAIVisionLLM,
)
from .schemas import (
    HeaderRecognition,
    ObjectiveRecognition,
    SubjectiveRequest,
    SubjectiveSuggestion,
)
from .service import RecognitionService

__all__ = [
    "RecognitionConfig",
    "recognition_config",
    "BaseVisionLLM",
    "LLMFactory",
    "LLMProvider",
    "OllamaVisionLLM",
    "OpenAIVisionLLM",
    "HeaderRecognition",
    "ObjectiveRecognition",
    "SubjectiveRequest",
    "SubjectiveSuggestion",
    "RecognitionService",
]
