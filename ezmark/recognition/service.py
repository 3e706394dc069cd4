"""
Recognition Service
Bounded, degrading access to the vision models used by the pipeline stages
"""
import asyncio
import base64
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..config import settings
from ..core.logger import recognition_logger as logger
from .config import RecognitionConfig, recognition_config
from .llm_providers import BaseVisionLLM, LLMFactory
from .prompts import HEADER_PROMPT, MCQ_PROMPT, build_subjective_prompt
from .schemas import (
    HeaderRecognition,
    ObjectiveRecognition,
    SubjectiveRequest,
    SubjectiveSuggestion,
)

TASKS = ("matching", "objective", "subjective")


def encode_image(path: Union[str, Path]) -> str:
    """Read an image file as base64 text"""
    with open(path, "rb") as f:
        return base64.b64encode(f.read()).decode("ascii")


class RecognitionService:
    """
    Vision recognition for headers, choices and free answers.

    Calls share one semaphore, so fan-out from every stage is bounded by
    ``concurrency``. Model failures never propagate: each call returns its
    sentinel result (``Unknown`` or score ``-1``) and logs the error.
    """

    def __init__(
        self,
        config: Optional[RecognitionConfig] = None,
        concurrency: Optional[int] = None
    ):
        self.config = config or recognition_config
        self.concurrency = concurrency or settings.RECOGNITION_CONCURRENCY
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._llms: Dict[str, BaseVisionLLM] = {}

    def llm_for(self, task: str) -> BaseVisionLLM:
        if task not in self._llms:
            self._llms[task] = LLMFactory.create(task, self.config)
        return self._llms[task]

    async def _ask(self, task: str, schema, prompt: str, image_path: Union[str, Path]):
        async with self._semaphore:
            image_b64 = await asyncio.to_thread(encode_image, image_path)
            return await self.llm_for(task).ainvoke_structured(schema, prompt, image_b64)

    async def recognize_header(self, image_path: Union[str, Path]) -> HeaderRecognition:
        """Read name and student ID from a header crop"""
        try:
            result = await self._ask("matching", HeaderRecognition, HEADER_PROMPT, image_path)
        except Exception as e:
            logger.error(f"Header recognition failed for {image_path}: {e}", exc_info=True)
            return HeaderRecognition.unknown(str(e))
        logger.info(f"Header recognized for {image_path}: {result.student_id}")
        return result

    async def recognize_objective(self, image_path: Union[str, Path]) -> ObjectiveRecognition:
        """Read the selected choice labels from a multiple-choice crop"""
        try:
            return await self._ask("objective", ObjectiveRecognition, MCQ_PROMPT, image_path)
        except Exception as e:
            logger.error(f"Objective recognition failed for {image_path}: {e}", exc_info=True)
            return ObjectiveRecognition.unknown(str(e))

    async def suggest_subjective(self, request: SubjectiveRequest) -> SubjectiveSuggestion:
        """Suggest a score for a free-response crop"""
        prompt = build_subjective_prompt(
            request.question_html, request.reference_answer, request.max_score
        )
        try:
            return await self._ask("subjective", SubjectiveSuggestion, prompt, request.image_path)
        except Exception as e:
            logger.error(
                f"Subjective suggestion failed for {request.image_path}: {e}", exc_info=True
            )
            return SubjectiveSuggestion.unavailable(str(e))

    def status(self, check: bool = False) -> Dict[str, Any]:
        """Provider and model per task, optionally probing connectivity"""
        tasks = {}
        for task in TASKS:
            try:
                llm = self.llm_for(task)
            except ValueError as e:
                tasks[task] = {"connected": False, "error": str(e)}
                continue
            tasks[task] = llm.check_connection() if check else llm.get_info()
        return {
            "provider": self.config.LLM_PROVIDER,
            "concurrency": self.concurrency,
            "tasks": tasks,
        }
