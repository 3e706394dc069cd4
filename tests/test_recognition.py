"""
Unit tests for the recognition client
"""
import asyncio

import pytest

from ezmark.recognition import (
    HeaderRecognition,
    LLMFactory,
    OllamaVisionLLM,
    RecognitionConfig,
    RecognitionService,
    SubjectiveRequest,
    SubjectiveSuggestion,
)
from ezmark.recognition.llm_providers import build_vision_message

from conftest import run


class ScriptedLLM:
    """Stands in for a provider; returns a fixed result or raises"""

    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.prompts = []

    async def ainvoke_structured(self, schema, prompt, image_b64):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.prompts.append(prompt)
        try:
            await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            self.active -= 1


@pytest.fixture
def config(monkeypatch):
    for name in ("LLM_PROVIDER", "OPENAI_API_KEY", "OLLAMA_MODEL"):
        monkeypatch.delenv(name, raising=False)
    return RecognitionConfig()


@pytest.fixture
def crop(tmp_path):
    path = tmp_path / "header.png"
    path.write_bytes(b"\x89PNG fake")
    return path


class TestSchemas:
    """Test cases for structured-output contracts"""

    def test_header_alias(self):
        header = HeaderRecognition.model_validate(
            {"reason": "clear", "name": "Alice", "studentId": "S001"}
        )
        assert header.student_id == "S001"

    def test_field_order(self):
        assert list(SubjectiveSuggestion.model_fields) == [
            "reasoning", "ocr_result", "suggestion", "score"
        ]

    def test_unavailable_suggestion(self):
        assert SubjectiveSuggestion.unavailable("timeout").score == -1

    def test_vision_message(self):
        message = build_vision_message("read it", "QUJD")
        assert message.content[0]["image_url"]["url"] == "data:image/png;base64,QUJD"
        assert message.content[1] == {"type": "text", "text": "read it"}


class TestRecognitionService:
    """Test cases for degradation and bounded fan-out"""

    def test_header_success(self, config, crop):
        service = RecognitionService(config, concurrency=2)
        service._llms["matching"] = ScriptedLLM(
            HeaderRecognition(reason="ok", name="Alice", student_id="S001")
        )
        assert run(service.recognize_header(crop)).student_id == "S001"

    def test_header_failure_degrades(self, config, crop):
        service = RecognitionService(config, concurrency=2)
        service._llms["matching"] = ScriptedLLM(error=RuntimeError("rate limited"))

        header = run(service.recognize_header(crop))

        assert header.student_id == "Unknown"
        assert header.name == "Unknown"

    def test_objective_failure_degrades(self, config, crop):
        service = RecognitionService(config, concurrency=2)
        service._llms["objective"] = ScriptedLLM(error=RuntimeError("bad gateway"))
        assert run(service.recognize_objective(crop)).answer == ["Unknown"]

    def test_missing_image_degrades(self, config, tmp_path):
        service = RecognitionService(config, concurrency=2)
        service._llms["objective"] = ScriptedLLM()
        assert run(service.recognize_objective(tmp_path / "gone.png")).answer == ["Unknown"]

    def test_subjective_prompt_and_failure(self, config, crop):
        service = RecognitionService(config, concurrency=2)
        llm = ScriptedLLM(error=ValueError("unparseable"))
        service._llms["subjective"] = llm

        suggestion = run(service.suggest_subjective(SubjectiveRequest(
            question_html="<p>Explain osmosis.</p>",
            reference_answer="Water moves across a membrane.",
            max_score=4,
            image_path=crop,
        )))

        assert suggestion.score == -1
        assert "<p>Explain osmosis.</p>" in llm.prompts[0]
        assert "Water moves across a membrane." in llm.prompts[0]

    def test_concurrency_bounded(self, config, crop):
        service = RecognitionService(config, concurrency=2)
        llm = ScriptedLLM(HeaderRecognition.unknown(), delay=0.02)
        service._llms["matching"] = llm

        async def fan_out():
            await asyncio.gather(*(service.recognize_header(crop) for _ in range(6)))

        run(fan_out())
        assert llm.peak == 2

    def test_status_reports_missing_key(self, config):
        status = RecognitionService(config, concurrency=3).status()
        assert status["provider"] == "openai"
        assert status["concurrency"] == 3
        assert status["tasks"]["matching"]["connected"] is False


class TestLLMFactory:
    """Test cases for provider selection"""

    def test_openai_requires_key(self, config):
        with pytest.raises(ValueError):
            LLMFactory.create("matching", config)

    def test_openai_models_per_task(self, config):
        config.OPENAI_API_KEY = "sk-test"
        assert LLMFactory.create("matching", config).model == config.MATCHING_MODEL_NAME
        assert LLMFactory.create("subjective", config).model == config.SUBJECTIVE_MODEL_NAME

    def test_ollama(self, config):
        config.LLM_PROVIDER = "ollama"
        llm = LLMFactory.create("objective", config)
        assert isinstance(llm, OllamaVisionLLM)
        assert llm.model == config.OLLAMA_MODEL
        assert llm.get_info()["provider"] == "ollama"

    def test_unknown_provider(self, config):
        config.LLM_PROVIDER = "groq"
        with pytest.raises(ValueError):
            LLMFactory.create("matching", config)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
