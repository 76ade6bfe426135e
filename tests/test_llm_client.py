from types import SimpleNamespace

import pytest

from app.llm import client as client_module
from app.llm.client import (
    AIGenerationError,
    LLMClient,
    LLMCompletion,
    LLMGenerationParams,
    backoff_ms,
    calculate_cost,
)
from app.schemas.generation import GeneratedCampaign


def _completion(provider: str = "openai", model: str = "gpt-4o") -> LLMCompletion:
    return LLMCompletion(
        content='{"ok": true}',
        provider=provider,
        model=model,
        prompt_tokens=10,
        completion_tokens=20,
        tokens_used=30,
        cost_usd=0.0,
        generation_time_ms=0,
    )


def _client(**kwargs) -> tuple[LLMClient, list[float]]:
    sleeps: list[float] = []
    kwargs.setdefault("gemini_api_key", "gemini-test-key")
    llm = LLMClient(sleep=sleeps.append, **kwargs)
    return llm, sleeps


def test_backoff_schedule():
    assert backoff_ms("RATE_LIMIT", 1) == 2000
    assert backoff_ms("RATE_LIMIT", 3) == 8000
    assert backoff_ms("RATE_LIMIT", 5) == 10000
    assert backoff_ms("TIMEOUT", 2) == 4000
    assert backoff_ms("NETWORK_ERROR", 1) == 2000
    assert backoff_ms("UNKNOWN", 3) == 3000


def test_calculate_cost_uses_per_million_pricing():
    assert calculate_cost("gpt-4o", 1_000_000, 1_000_000) == pytest.approx(12.5)
    assert calculate_cost("gemini-2.5-flash", 1000, 2000) == pytest.approx(0.000675)
    assert calculate_cost("gpt-4o-mini-2024-07-18", 1_000_000, 0) == pytest.approx(0.15)
    assert calculate_cost("some-unpriced-model", 1000, 1000) == 0.0


def test_rate_limit_errors_are_retried_with_backoff(monkeypatch):
    llm, sleeps = _client()
    attempts = []

    def failing(system_prompt, user_prompt, model, params):
        attempts.append(model)
        raise AIGenerationError("slow down", code="RATE_LIMIT", retryable=True)

    monkeypatch.setattr(llm, "_generate_with_gemini", failing)
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user", LLMGenerationParams(retries=3))
    assert excinfo.value.code == "RATE_LIMIT"
    assert excinfo.value.retryable is True
    assert len(attempts) == 3
    assert sleeps == [2.0, 4.0]
    assert excinfo.value.__cause__.message == "slow down"


def test_transient_failure_recovers_on_next_attempt(monkeypatch):
    llm, sleeps = _client(retries=3)
    outcomes = [AIGenerationError("network blip", code="NETWORK_ERROR", retryable=True)]

    def flaky(system_prompt, user_prompt, model, params):
        if outcomes:
            raise outcomes.pop()
        return _completion(provider="gemini", model=model)

    monkeypatch.setattr(llm, "_generate_with_gemini", flaky)
    completion = llm.generate_json("system", "user")
    assert completion.provider == "gemini"
    assert len(sleeps) == 1


def test_timeouts_are_classified_and_retried(monkeypatch):
    llm, sleeps = _client(retries=2)

    def failing(system_prompt, user_prompt, model, params):
        raise TimeoutError("deadline")

    monkeypatch.setattr(llm, "_generate_with_gemini", failing)
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user")
    assert excinfo.value.code == "TIMEOUT"
    assert sleeps == [2.0]


def test_invalid_api_key_is_not_retried(monkeypatch):
    llm, sleeps = _client(openai_api_key="openai-test-key")
    attempts = []

    def failing(system_prompt, user_prompt, model, params):
        attempts.append(model)
        raise RuntimeError("API key not valid. Please pass a valid API key.")

    monkeypatch.setattr(llm, "_generate_with_gemini", failing)
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user", LLMGenerationParams(retries=3))
    assert excinfo.value.code == "INVALID_API_KEY"
    assert len(attempts) == 1
    assert sleeps == []


def test_missing_gemini_key_is_a_config_error():
    llm = LLMClient(sleep=lambda _: None)
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user")
    assert excinfo.value.code == "INVALID_API_KEY"


def test_gemini_quota_falls_back_to_openai(monkeypatch):
    llm, sleeps = _client(openai_api_key="openai-test-key")
    calls = []

    def gemini(system_prompt, user_prompt, model, params):
        calls.append(("gemini", model))
        raise AIGenerationError("quota exceeded", code="INSUFFICIENT_QUOTA", retryable=True)

    def openai(system_prompt, user_prompt, model, params):
        calls.append(("openai", model))
        return _completion()

    monkeypatch.setattr(llm, "_generate_with_gemini", gemini)
    monkeypatch.setattr(llm, "_generate_with_openai", openai)
    completion = llm.generate_json("system", "user", LLMGenerationParams(retries=3))
    assert completion.provider == "openai"
    assert calls == [("gemini", "gemini-2.5-flash"), ("openai", "gpt-4o")]
    assert sleeps == []


def test_no_fallback_without_openai_key(monkeypatch):
    llm, _ = _client()

    def gemini(system_prompt, user_prompt, model, params):
        raise AIGenerationError("quota exceeded", code="INSUFFICIENT_QUOTA", retryable=True)

    monkeypatch.setattr(llm, "_generate_with_gemini", gemini)
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user")
    assert excinfo.value.code == "INSUFFICIENT_QUOTA"


def test_gemini_request_omits_response_schema_by_default(monkeypatch):
    captured = {}

    class FakeModel:
        def __init__(self, model_name, system_instruction, generation_config):
            captured["model_name"] = model_name
            captured["system_instruction"] = system_instruction
            captured["generation_config"] = generation_config

        def generate_content(self, prompt, request_options=None):
            captured["prompt"] = prompt
            part = SimpleNamespace(text='```json\n{"campaignName": "Launch"}\n```')
            candidate = SimpleNamespace(
                finish_reason=SimpleNamespace(name="STOP"),
                content=SimpleNamespace(parts=[part]),
            )
            usage = SimpleNamespace(prompt_token_count=100, candidates_token_count=200, total_token_count=300)
            return SimpleNamespace(candidates=[candidate], usage_metadata=usage)

    monkeypatch.setattr(client_module.genai, "configure", lambda **kwargs: captured.setdefault("configure", kwargs))
    monkeypatch.setattr(client_module.genai, "GenerativeModel", FakeModel)

    llm, _ = _client()
    completion = llm.generate_json(
        "system", "user", LLMGenerationParams(max_tokens=16000, response_model=GeneratedCampaign)
    )
    assert completion.content == '{"campaignName": "Launch"}'
    assert completion.tokens_used == 300
    assert completion.provider == "gemini"
    assert captured["model_name"] == "models/gemini-2.5-flash"
    assert captured["configure"] == {"api_key": "gemini-test-key"}
    config = captured["generation_config"]
    assert config["response_mime_type"] == "application/json"
    assert config["max_output_tokens"] == 16000
    assert "response_schema" not in config


def test_gemini_safety_stop_is_an_invalid_response(monkeypatch):
    class BlockedModel:
        def __init__(self, **kwargs):
            pass

        def generate_content(self, prompt, request_options=None):
            candidate = SimpleNamespace(finish_reason=SimpleNamespace(name="SAFETY"), content=None)
            return SimpleNamespace(candidates=[candidate], usage_metadata=None)

    monkeypatch.setattr(client_module.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(client_module.genai, "GenerativeModel", BlockedModel)

    llm, sleeps = _client(retries=1)
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user")
    assert excinfo.value.code == "INVALID_RESPONSE"
    assert "safety filters" in excinfo.value.message
    assert sleeps == []


def test_openai_request_caps_max_tokens_and_uses_strict_schema():
    captured = {}

    def create(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content='{"campaignName": "Launch"}')
        choice = SimpleNamespace(finish_reason="stop", message=message)
        usage = SimpleNamespace(prompt_tokens=1000, completion_tokens=500, total_tokens=1500)
        return SimpleNamespace(choices=[choice], usage=usage)

    llm, _ = _client(openai_api_key="openai-test-key", default_provider="openai")
    llm._openai_client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    completion = llm.generate_json(
        "system", "user", LLMGenerationParams(max_tokens=32000, response_model=GeneratedCampaign)
    )
    assert captured["model"] == "gpt-4o"
    assert captured["max_tokens"] == 16384
    assert captured["response_format"]["type"] == "json_schema"
    assert captured["messages"][0] == {"role": "system", "content": "system"}
    assert completion.cost_usd == pytest.approx(0.0075)
    assert completion.tokens_used == 1500


def test_openai_truncation_is_reported():
    def create(**kwargs):
        choice = SimpleNamespace(finish_reason="length", message=SimpleNamespace(content='{"a": '))
        return SimpleNamespace(choices=[choice], usage=None)

    llm, _ = _client(openai_api_key="openai-test-key", default_provider="openai", retries=1)
    llm._openai_client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    with pytest.raises(AIGenerationError) as excinfo:
        llm.generate_json("system", "user")
    assert "truncated" in excinfo.value.message
