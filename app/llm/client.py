from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
import google.generativeai as genai
import openai
from openai import OpenAI
from pydantic import BaseModel

from app.config import Settings
from app.llm.json_repair import strip_code_fences
from app.llm.schema_converter import openai_response_format, to_gemini_schema
from app.observability import start_langfuse_generation

logger = logging.getLogger(__name__)

GEMINI = "gemini"
OPENAI = "openai"

# USD per one million tokens: (input, output).
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gemini-2.5-flash": (0.075, 0.30),
    "gemini-2.0-flash-exp": (0.0, 0.0),
    "gemini-1.5-flash": (0.075, 0.30),
    "gemini-1.5-pro": (1.25, 5.00),
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4-turbo": (10.00, 30.00),
}

_OPENAI_MAX_OUTPUT_TOKENS = 16384
_RATE_LIMIT_BACKOFF_CAP_MS = 10_000


class AIGenerationError(Exception):
    """Provider failure with a stable code and whether another attempt could succeed."""

    def __init__(self, message: str, code: str = "UNKNOWN", retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable


class LLMClientConfigError(AIGenerationError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_API_KEY", retryable=False)


@dataclass
class LLMGenerationParams:
    provider: Optional[str] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: float = 0.7
    retries: Optional[int] = None
    response_model: Optional[type[BaseModel]] = None


@dataclass
class LLMCompletion:
    content: str
    provider: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    tokens_used: int
    cost_usd: float
    generation_time_ms: int


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        # Dated snapshots ("gpt-4o-mini-2024-07-18") price like their longest known prefix.
        prefixes = [known for known in MODEL_PRICING if model.startswith(known)]
        if prefixes:
            pricing = MODEL_PRICING[max(prefixes, key=len)]
    if pricing is None:
        return 0.0
    input_price, output_price = pricing
    return (prompt_tokens / 1_000_000) * input_price + (completion_tokens / 1_000_000) * output_price


def backoff_ms(code: str, attempt: int) -> int:
    if code == "RATE_LIMIT":
        return min(1000 * 2**attempt, _RATE_LIMIT_BACKOFF_CAP_MS)
    if code in ("NETWORK_ERROR", "TIMEOUT"):
        return 2000 * attempt
    return 1000 * attempt


class LLMClient:
    """
    Structured JSON generation against Gemini (primary) with OpenAI as fallback.
    Instances own their provider SDK clients; build one per process and inject it.
    """

    def __init__(
        self,
        *,
        gemini_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        openai_base_url: Optional[str] = None,
        default_provider: str = GEMINI,
        gemini_model: str = "gemini-2.5-flash",
        openai_model: str = "gpt-4o",
        timeout_seconds: int = 120,
        retries: int = 3,
        use_gemini_response_schema: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if default_provider not in (GEMINI, OPENAI):
            raise ValueError(f"Unsupported AI provider: {default_provider}")
        self.gemini_api_key = gemini_api_key
        self.openai_api_key = openai_api_key
        self.openai_base_url = openai_base_url
        self.default_provider = default_provider
        self.gemini_model = gemini_model
        self.openai_model = openai_model
        self.timeout_seconds = timeout_seconds
        self.retries = max(1, retries)
        self.use_gemini_response_schema = use_gemini_response_schema
        self._sleep = sleep
        self._gemini_configured = False
        self._openai_client: Optional[OpenAI] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            gemini_api_key=settings.GEMINI_API_KEY,
            openai_api_key=settings.OPENAI_API_KEY,
            openai_base_url=settings.OPENAI_BASE_URL,
            default_provider=settings.AI_PROVIDER,
            gemini_model=settings.GEMINI_MODEL,
            openai_model=settings.OPENAI_MODEL,
            timeout_seconds=settings.LLM_REQUEST_TIMEOUT,
            retries=settings.LLM_REQUEST_RETRIES,
            use_gemini_response_schema=settings.GEMINI_USE_RESPONSE_SCHEMA,
        )

    def default_model(self, provider: Optional[str] = None) -> str:
        return self.gemini_model if (provider or self.default_provider) == GEMINI else self.openai_model

    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        params: Optional[LLMGenerationParams] = None,
    ) -> LLMCompletion:
        params = params or LLMGenerationParams()
        provider = params.provider or self.default_provider
        try:
            return self._generate_with_retries(provider, system_prompt, user_prompt, params)
        except AIGenerationError as exc:
            if provider != GEMINI or not exc.retryable or not self.openai_api_key:
                raise
            logger.warning(
                "Gemini generation failed; falling back to OpenAI",
                extra={"code": exc.code, "error": exc.message},
            )
            fallback = LLMGenerationParams(
                provider=OPENAI,
                model=self.openai_model,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
                retries=params.retries,
                response_model=params.response_model,
            )
            return self._generate_with_retries(OPENAI, system_prompt, user_prompt, fallback)

    def _generate_with_retries(
        self,
        provider: str,
        system_prompt: str,
        user_prompt: str,
        params: LLMGenerationParams,
    ) -> LLMCompletion:
        model = params.model or self.default_model(provider)
        retries = max(1, params.retries or self.retries)
        classify = self._classify_gemini_error if provider == GEMINI else self._classify_openai_error
        call = self._generate_with_gemini if provider == GEMINI else self._generate_with_openai

        start = time.monotonic()
        for attempt in range(1, retries + 1):
            try:
                with start_langfuse_generation(
                    name=f"campaign_generation.{provider}",
                    model=model,
                    input={"system": system_prompt, "user": user_prompt},
                    model_parameters={"temperature": params.temperature, "max_tokens": params.max_tokens},
                    metadata={"attempt": attempt},
                ) as generation:
                    completion = call(system_prompt, user_prompt, model, params)
                    completion.generation_time_ms = int((time.monotonic() - start) * 1000)
                    if generation is not None:
                        generation.update(
                            output=completion.content,
                            usage_details={
                                "input": completion.prompt_tokens,
                                "output": completion.completion_tokens,
                            },
                            cost_details={"total": completion.cost_usd},
                        )
                logger.info(
                    "LLM generation succeeded",
                    extra={
                        "provider": provider,
                        "model": model,
                        "attempt": attempt,
                        "tokens_used": completion.tokens_used,
                        "cost_usd": completion.cost_usd,
                        "generation_time_ms": completion.generation_time_ms,
                    },
                )
                return completion
            except AIGenerationError as exc:
                error = exc
            except Exception as exc:  # noqa: BLE001
                error = classify(exc)
                error.__cause__ = exc

            logger.warning(
                "LLM generation attempt failed",
                extra={
                    "provider": provider,
                    "model": model,
                    "attempt": attempt,
                    "retries": retries,
                    "code": error.code,
                    "error": error.message,
                },
            )
            if error.code in ("INVALID_API_KEY", "INSUFFICIENT_QUOTA"):
                raise error
            if attempt >= retries:
                raise AIGenerationError(
                    error.message or "Failed to generate completion after multiple retries",
                    code=error.code,
                    retryable=True,
                ) from error
            self._sleep(backoff_ms(error.code, attempt) / 1000)

    # Gemini

    def _ensure_gemini(self) -> None:
        if not self.gemini_api_key:
            raise LLMClientConfigError("GEMINI_API_KEY not configured")
        if not self._gemini_configured:
            genai.configure(api_key=self.gemini_api_key)
            self._gemini_configured = True

    def _generate_with_gemini(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        params: LLMGenerationParams,
    ) -> LLMCompletion:
        self._ensure_gemini()
        generation_config: dict[str, Any] = {
            "temperature": params.temperature,
            "response_mime_type": "application/json",
        }
        if params.max_tokens:
            generation_config["max_output_tokens"] = params.max_tokens
        if params.response_model is not None and self.use_gemini_response_schema:
            generation_config["response_schema"] = to_gemini_schema(params.response_model)

        model_name = model if model.startswith("models/") else f"models/{model}"
        model_client = genai.GenerativeModel(
            model_name=model_name,
            system_instruction=system_prompt,
            generation_config=generation_config,
        )
        result = model_client.generate_content(
            user_prompt, request_options={"timeout": self.timeout_seconds}
        )

        candidates = getattr(result, "candidates", None) or []
        if not candidates:
            raise AIGenerationError(
                "Gemini API returned no candidates. Response may have been blocked by safety filters.",
                code="INVALID_RESPONSE",
                retryable=True,
            )
        candidate = candidates[0]
        finish_reason = _finish_reason_name(getattr(candidate, "finish_reason", None))
        if finish_reason and finish_reason not in ("STOP", "FINISH_REASON_UNSPECIFIED"):
            raise AIGenerationError(
                _GEMINI_FINISH_MESSAGES.get(finish_reason, f"Gemini API stopped with reason: {finish_reason}"),
                code="INVALID_RESPONSE",
                retryable=True,
            )

        parts = getattr(getattr(candidate, "content", None), "parts", None) or []
        text = "".join(part.text for part in parts if getattr(part, "text", None))
        text = strip_code_fences(text)
        if not text:
            raise AIGenerationError("Gemini API returned empty response", code="INVALID_RESPONSE", retryable=True)

        usage = getattr(result, "usage_metadata", None)
        prompt_tokens = int(getattr(usage, "prompt_token_count", 0) or 0)
        completion_tokens = int(getattr(usage, "candidates_token_count", 0) or 0)
        total_tokens = int(getattr(usage, "total_token_count", 0) or 0) or prompt_tokens + completion_tokens
        return LLMCompletion(
            content=text,
            provider=GEMINI,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            tokens_used=total_tokens,
            cost_usd=calculate_cost(model, prompt_tokens, completion_tokens),
            generation_time_ms=0,
        )

    @staticmethod
    def _classify_gemini_error(exc: Exception) -> AIGenerationError:
        message = str(exc) or exc.__class__.__name__
        lowered = message.lower()
        if "api_key" in lowered or "api key" in lowered or isinstance(
            exc, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)
        ):
            return AIGenerationError(
                "Invalid Gemini API key. Please check your GEMINI_API_KEY.",
                code="INVALID_API_KEY",
            )
        if "quota" in lowered:
            # Retryable so the caller can fall back to OpenAI; not retried against Gemini.
            return AIGenerationError(
                "Gemini API quota exceeded. Please check your billing.",
                code="INSUFFICIENT_QUOTA",
                retryable=True,
            )
        if "rate limit" in lowered or isinstance(
            exc, (google_exceptions.TooManyRequests, google_exceptions.ResourceExhausted)
        ):
            return AIGenerationError(
                "Gemini API rate limit exceeded. Please try again later.",
                code="RATE_LIMIT",
                retryable=True,
            )
        if isinstance(exc, (google_exceptions.DeadlineExceeded, TimeoutError)):
            return AIGenerationError(f"Gemini request timed out: {message}", code="TIMEOUT", retryable=True)
        if isinstance(exc, (google_exceptions.ServiceUnavailable, ConnectionError)):
            return AIGenerationError(f"Network error calling Gemini: {message}", code="NETWORK_ERROR", retryable=True)
        return AIGenerationError(message, code="UNKNOWN", retryable=True)

    # OpenAI

    def _ensure_openai(self) -> OpenAI:
        if not self.openai_api_key:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")
        if self._openai_client is None:
            client_kwargs: dict[str, Any] = {
                "api_key": self.openai_api_key,
                "timeout": float(self.timeout_seconds),
                # Retries are handled here so backoff policy is uniform across providers.
                "max_retries": 0,
            }
            if self.openai_base_url:
                client_kwargs["base_url"] = self.openai_base_url
            self._openai_client = OpenAI(**client_kwargs)
        return self._openai_client

    def _generate_with_openai(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        params: LLMGenerationParams,
    ) -> LLMCompletion:
        client = self._ensure_openai()
        if params.response_model is not None:
            response_format = openai_response_format(params.response_model)
        else:
            response_format = {"type": "json_object"}
        request_kwargs: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": params.temperature,
            "response_format": response_format,
        }
        if params.max_tokens:
            request_kwargs["max_tokens"] = min(params.max_tokens, _OPENAI_MAX_OUTPUT_TOKENS)

        response = client.chat.completions.create(**request_kwargs)
        if not response.choices:
            raise AIGenerationError("OpenAI returned no choices", code="INVALID_RESPONSE", retryable=True)
        choice = response.choices[0]
        if choice.finish_reason == "length":
            raise AIGenerationError(
                "OpenAI response truncated due to max tokens limit.",
                code="INVALID_RESPONSE",
                retryable=True,
            )
        content = strip_code_fences(choice.message.content or "")
        if not content:
            raise AIGenerationError("OpenAI returned empty response", code="INVALID_RESPONSE", retryable=True)

        usage = response.usage
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        total_tokens = int(getattr(usage, "total_tokens", 0) or 0) or prompt_tokens + completion_tokens
        return LLMCompletion(
            content=content,
            provider=OPENAI,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            tokens_used=total_tokens,
            cost_usd=calculate_cost(model, prompt_tokens, completion_tokens),
            generation_time_ms=0,
        )

    @staticmethod
    def _classify_openai_error(exc: Exception) -> AIGenerationError:
        message = str(exc) or exc.__class__.__name__
        if isinstance(exc, openai.AuthenticationError):
            return AIGenerationError(
                "Invalid OpenAI API key. Please check your OPENAI_API_KEY.",
                code="INVALID_API_KEY",
            )
        if isinstance(exc, openai.RateLimitError):
            if getattr(exc, "code", None) == "insufficient_quota":
                return AIGenerationError(
                    "Insufficient OpenAI quota. Please add credits.",
                    code="INSUFFICIENT_QUOTA",
                )
            return AIGenerationError(
                "OpenAI rate limit exceeded. Please try again later.",
                code="RATE_LIMIT",
                retryable=True,
            )
        if isinstance(exc, openai.APITimeoutError):
            return AIGenerationError(f"OpenAI request timed out: {message}", code="TIMEOUT", retryable=True)
        if isinstance(exc, (openai.APIConnectionError, ConnectionError)):
            return AIGenerationError(f"Network error calling OpenAI: {message}", code="NETWORK_ERROR", retryable=True)
        return AIGenerationError(message, code="UNKNOWN", retryable=True)


_GEMINI_FINISH_MESSAGES = {
    "SAFETY": "Gemini API blocked response due to safety filters.",
    "MAX_TOKENS": "Gemini API response truncated due to max tokens limit.",
    "RECITATION": "Gemini API blocked response due to recitation detection.",
}


def _finish_reason_name(reason: Any) -> Optional[str]:
    if reason is None:
        return None
    name = getattr(reason, "name", None)
    if isinstance(name, str):
        return name
    return str(reason)
