"""
LLM Providers Module
====================
Abstraction layer for swappable vision-capable chat models.
Supports OpenAI (or any OpenAI-compatible endpoint) and Ollama (local).
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from ..core.exceptions import RecognitionException
from .config import RecognitionConfig, recognition_config

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    OPENAI = "openai"
    OLLAMA = "ollama"


def build_vision_message(prompt: str, image_b64: str, mime_type: str = "image/png") -> HumanMessage:
    """Single user turn carrying an inline image followed by the instructions"""
    return HumanMessage(content=[
        {
            "type": "image_url",
            "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
        },
        {"type": "text", "text": prompt},
    ])


class BaseVisionLLM(ABC):
    """
    Abstract base class for vision LLM providers.
    Provides a unified interface for structured image questions.
    """

    def __init__(self, model: str, temperature: float = 0.0, timeout: float = 120.0):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._llm: Optional[BaseChatModel] = None

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name"""
        pass

    @abstractmethod
    def _create_llm(self) -> BaseChatModel:
        """Create and return the underlying LangChain chat model"""
        pass

    @property
    def llm(self) -> BaseChatModel:
        """Get the underlying LangChain chat model (lazy initialization)"""
        if self._llm is None:
            self._llm = self._create_llm()
        return self._llm

    async def ainvoke_structured(
        self,
        schema: Type[SchemaT],
        prompt: str,
        image_b64: str
    ) -> SchemaT:
        """
        Ask about an image and parse the reply into a schema.

        Args:
            schema: Pydantic model describing the expected answer
            prompt: Task instructions
            image_b64: Base64-encoded PNG

        Returns:
            Parsed schema instance
        """
        structured = self.llm.with_structured_output(schema)
        result = await structured.ainvoke([build_vision_message(prompt, image_b64)])
        if result is None:
            raise RecognitionException(self.model, "no structured output")
        return result

    def check_connection(self) -> Dict[str, Any]:
        """
        Check if the provider is accessible.

        Returns:
            Dictionary with connection status
        """
        info = self.get_info()
        try:
            self.llm.invoke("Say 'OK' if you can read this.")
            return {**info, "connected": True, "message": f"{self.provider_name} connection successful"}
        except Exception as e:
            logger.error(f"{self.provider_name} connection check failed: {e}")
            return {
                **info,
                "connected": False,
                "error": str(e),
                "message": f"Cannot connect to {self.provider_name}: {str(e)}",
            }

    def get_info(self) -> Dict[str, Any]:
        """Get provider information"""
        return {
            "provider": self.provider_name,
            "model": self.model,
            "temperature": self.temperature,
        }


class OpenAIVisionLLM(BaseVisionLLM):
    """
    OpenAI provider, also used for OpenAI-compatible gateways via base_url.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        timeout: float = 120.0,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        super().__init__(model=model, temperature=temperature, timeout=timeout)

        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for the openai provider")

        self.api_key = api_key
        self.base_url = base_url
        logger.info(f"OpenAIVisionLLM initialized: model={model}, base_url={base_url}")

    @property
    def provider_name(self) -> str:
        return LLMProvider.OPENAI.value

    def _create_llm(self) -> BaseChatModel:
        """Create ChatOpenAI instance"""
        kwargs = {
            "model": self.model,
            "temperature": self.temperature,
            "api_key": self.api_key,
            "timeout": self.timeout,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return ChatOpenAI(**kwargs)

    def get_info(self) -> Dict[str, Any]:
        return {**super().get_info(), "base_url": self.base_url}


class OllamaVisionLLM(BaseVisionLLM):
    """
    Ollama provider for local vision models.
    """

    def __init__(
        self,
        model: str = "llama3.2-vision:latest",
        temperature: float = 0.0,
        timeout: float = 120.0,
        base_url: str = "http://localhost:11434",
    ):
        super().__init__(model=model, temperature=temperature, timeout=timeout)
        self.base_url = base_url
        logger.info(f"OllamaVisionLLM initialized: model={model}, base_url={base_url}")

    @property
    def provider_name(self) -> str:
        return LLMProvider.OLLAMA.value

    def _create_llm(self) -> BaseChatModel:
        """Create ChatOllama instance"""
        return ChatOllama(
            model=self.model,
            temperature=self.temperature,
            base_url=self.base_url,
        )

    def get_info(self) -> Dict[str, Any]:
        return {**super().get_info(), "base_url": self.base_url}


class LLMFactory:
    """
    Factory class for creating vision LLM instances.
    """

    @classmethod
    def create(
        cls,
        task: str,
        config: Optional[RecognitionConfig] = None
    ) -> BaseVisionLLM:
        """
        Create the LLM serving a recognition task.

        Args:
            task: "matching", "objective" or "subjective"
            config: Recognition settings, defaults to the environment

        Returns:
            BaseVisionLLM instance
        """
        config = config or recognition_config
        provider = config.LLM_PROVIDER
        model = config.model_for(task)

        logger.info(f"Creating LLM: task={task}, provider={provider}, model={model}")

        if provider == LLMProvider.OPENAI.value:
            return OpenAIVisionLLM(
                model=model,
                temperature=config.LLM_TEMPERATURE,
                timeout=config.LLM_TIMEOUT,
                api_key=config.OPENAI_API_KEY,
                base_url=config.OPENAI_BASE_URL,
            )
        elif provider == LLMProvider.OLLAMA.value:
            return OllamaVisionLLM(
                model=model,
                temperature=config.LLM_TEMPERATURE,
                timeout=config.LLM_TIMEOUT,
                base_url=config.OLLAMA_BASE_URL,
            )
        else:
            raise ValueError(f"Unknown LLM provider: {provider}. Supported: openai, ollama")
