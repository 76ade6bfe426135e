from contextlib import contextmanager

import pytest

from app.observability import langfuse as langfuse_module


@pytest.fixture(autouse=True)
def reset_langfuse_state() -> None:
    langfuse_module._langfuse_client = None
    langfuse_module._langfuse_initialized = False
    yield
    langfuse_module._langfuse_client = None
    langfuse_module._langfuse_initialized = False


def _configure_enabled_langfuse(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", True)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_PUBLIC_KEY", "pk-test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SECRET_KEY", "sk-test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_HOST", "https://example.langfuse.test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENVIRONMENT", "test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_RELEASE", "test-release")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SAMPLE_RATE", 1.0)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_TIMEOUT_SECONDS", 20)


class FakeGeneration:
    def __init__(self) -> None:
        self.updates: list[dict] = []

    def update(self, **kwargs) -> None:
        self.updates.append(kwargs)


class FakeLangfuse:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.generations: list[tuple[dict, FakeGeneration]] = []
        self.trace_updates: list[dict] = []

    @contextmanager
    def start_as_current_generation(self, **kwargs):
        generation = FakeGeneration()
        self.generations.append((kwargs, generation))
        yield generation

    def update_current_trace(self, **kwargs) -> None:
        self.trace_updates.append(kwargs)

    def shutdown(self) -> None:
        pass


def test_disabled_langfuse_yields_no_generation(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", False)
    assert langfuse_module.get_langfuse_client() is None
    with langfuse_module.start_langfuse_generation(name="campaign_generation.gemini", model="gemini-2.5-flash") as generation:
        assert generation is None


def test_enabled_langfuse_requires_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_PUBLIC_KEY", None)
    with pytest.raises(langfuse_module.LangfuseConfigError, match="LANGFUSE_PUBLIC_KEY"):
        langfuse_module.initialize_langfuse()
    assert langfuse_module._langfuse_initialized is False


def test_enabled_langfuse_rejects_bad_sample_rate(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SAMPLE_RATE", 1.5)
    with pytest.raises(langfuse_module.LangfuseConfigError, match="LANGFUSE_SAMPLE_RATE"):
        langfuse_module.initialize_langfuse()


def test_initialize_langfuse_builds_client(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)

    langfuse_module.initialize_langfuse()
    client = langfuse_module._langfuse_client
    assert isinstance(client, FakeLangfuse)
    assert client.kwargs["public_key"] == "pk-test"
    assert client.kwargs["environment"] == "test"
    assert client.kwargs["release"] == "test-release"


def test_generation_span_carries_trace_context(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)

    trace = langfuse_module.LangfuseTraceContext(
        name="campaign_generation",
        user_id="user-1",
        metadata={"tone": "friendly"},
        tags=["campaign-generator"],
    )
    with langfuse_module.bind_langfuse_trace_context(trace):
        with langfuse_module.start_langfuse_generation(
            name="campaign_generation.gemini",
            model="gemini-2.5-flash",
            metadata={"attempt": 1},
        ) as generation:
            generation.update(output="{}")

    client = langfuse_module._langfuse_client
    [(kwargs, recorded)] = client.generations
    assert kwargs["name"] == "campaign_generation.gemini"
    assert recorded.updates == [{"output": "{}"}]
    assert client.trace_updates == [
        {
            "name": "campaign_generation",
            "user_id": "user-1",
            "metadata": {"tone": "friendly", "attempt": 1},
            "tags": ["campaign-generator"],
        }
    ]
    assert langfuse_module.get_current_trace_context() is None


def test_generation_span_marks_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)

    with pytest.raises(RuntimeError):
        with langfuse_module.start_langfuse_generation(name="campaign_generation.openai", model="gpt-4o"):
            raise RuntimeError("provider exploded")

    [(_, recorded)] = langfuse_module._langfuse_client.generations
    assert recorded.updates == [{"level": "ERROR", "status_message": "provider exploded"}]
