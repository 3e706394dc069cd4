"""
Recognition Configuration
=========================
Settings for the vision models that read headers, choices and free answers.
All settings can be overridden via environment variables.

Supports multiple LLM providers:
- OpenAI (or any OpenAI-compatible endpoint)
- Ollama (local inference)
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class RecognitionConfig:
    """Configuration for the recognition client"""

    # ===== LLM Provider Settings =====
    LLM_PROVIDER: str = "openai"  # "openai" or "ollama"

    # ===== OpenAI-compatible Settings =====
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    MATCHING_MODEL_NAME: str = "gpt-4o-mini"
    OBJECTIVE_MODEL_NAME: str = "gpt-4o-mini"
    SUBJECTIVE_MODEL_NAME: str = "gpt-4o"

    # ===== Ollama Settings =====
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.2-vision:latest"

    # ===== Shared =====
    LLM_TEMPERATURE: float = 0.0
    LLM_TIMEOUT: float = 120.0

    def __post_init__(self):
        """Load settings from environment variables"""
        self.LLM_PROVIDER = os.getenv("LLM_PROVIDER", self.LLM_PROVIDER).lower()

        # OpenAI
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", self.OPENAI_API_KEY)
        self.OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", self.OPENAI_BASE_URL) or None
        self.MATCHING_MODEL_NAME = os.getenv("MATCHING_MODEL_NAME", self.MATCHING_MODEL_NAME)
        self.OBJECTIVE_MODEL_NAME = os.getenv("OBJECTIVE_MODEL_NAME", self.OBJECTIVE_MODEL_NAME)
        self.SUBJECTIVE_MODEL_NAME = os.getenv("SUBJECTIVE_MODEL_NAME", self.SUBJECTIVE_MODEL_NAME)

        # Ollama
        self.OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", self.OLLAMA_BASE_URL)
        self.OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", self.OLLAMA_MODEL)

        self.LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", self.LLM_TEMPERATURE))
        self.LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", self.LLM_TIMEOUT))

    def model_for(self, task: str) -> str:
        """Model name for a recognition task ("matching", "objective", "subjective")"""
        if self.LLM_PROVIDER == "ollama":
            return self.OLLAMA_MODEL
        return {
            "matching": self.MATCHING_MODEL_NAME,
            "objective": self.OBJECTIVE_MODEL_NAME,
            "subjective": self.SUBJECTIVE_MODEL_NAME,
        }[task]


# Global config instance
recognition_config = RecognitionConfig()
