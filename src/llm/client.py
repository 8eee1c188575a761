"""
LLM client abstraction for chat-completion providers.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Timeout handling
- Usage tracking (tokens)
- Typed error mapping (auth, rate limit, bad request, server, timeout)
- Two-client architecture (generation, fallback)

Retry policy lives in the response generator: a client makes exactly one
HTTP attempt per call and reports what went wrong through the exception type.

Supported providers:
- openai: OpenAI chat completions
- deepseek: DeepSeek (OpenAI-compatible)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional
import time

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import (
    LLMAuthenticationError,
    LLMBadRequestError,
    LLMError,
    LLMInvalidResponseError,
    LLMRateLimitError,
    LLMServerError,
    LLMTimeoutError,
)

log = structlog.get_logger(__name__)


LLMClientType = Literal["generation", "fallback"]


# =============================================================================
# Default configurations for each client type
# =============================================================================

# Override the provider via environment variables (LLM_GENERATION_PROVIDER, ...)

GENERATION_DEFAULTS = dict(
    provider="openai",
    model="gpt-4o-mini",
    temperature=0.1,  # Low for consistent JSON and advancement decisions
    max_tokens=2000,  # Room for career objective and job experience reports
    timeout=30.0,
)

FALLBACK_DEFAULTS = dict(
    provider="openai",
    model="gpt-4o-mini",
    temperature=0.3,
    max_tokens=100,  # Short plain-text reply
    timeout=30.0,
)

DEFAULTS_MAP: Dict[LLMClientType, Dict[str, Any]] = {
    "generation": GENERATION_DEFAULTS,
    "fallback": FALLBACK_DEFAULTS,
}

PROVIDER_MODELS: Dict[str, str] = {
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
}


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            prompt: Latest user message
            system: Optional system prompt
            history: Earlier chat messages ({"role", "content"}), oldest first
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response
            json_mode: Ask the provider for a JSON object response
            timeout: Optional timeout override in seconds

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMError subclass describing the failure
        """
        pass


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", ""))
        if error:
            return str(error)
    return ""


def map_http_error(provider: str, exc: httpx.HTTPStatusError) -> LLMError:
    """Translate an HTTP status failure into the LLM error taxonomy."""
    status_code = exc.response.status_code
    detail = _error_detail(exc.response)
    message = f"{provider} API error {status_code}"
    if detail:
        message = f"{message}: {detail}"

    if status_code in (401, 403):
        return LLMAuthenticationError(
            f"Invalid API key. Please check your {provider} API key."
        )
    if status_code == 429:
        return LLMRateLimitError(message)
    if status_code == 400:
        return LLMBadRequestError(message)
    if status_code >= 500:
        return LLMServerError(message, status_code=status_code)
    return LLMError(message)


# =============================================================================
# OpenAI-Compatible Client Base
# =============================================================================


class OpenAICompatibleClient(LLMClient):
    """
    Base class for OpenAI-compatible API clients.

    Used by providers that follow the OpenAI chat completions format:
    - OpenAI: https://api.openai.com/v1
    - DeepSeek: https://api.deepseek.com
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        client_type: LLMClientType,
        base_url: str,
        provider_name: str,
        api_key: str,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.client_type = client_type
        self.base_url = base_url
        self.provider_name = provider_name
        self.api_key = api_key

        log.info(
            "openai_compatible_client_initialized",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            timeout=self.timeout,
        )

    def _build_payload(
        self,
        prompt: str,
        system: Optional[str],
        history: Optional[List[Dict[str, str]]],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        for message in history or []:
            messages.append({"role": message["role"], "content": message["content"]})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Call the chat completions endpoint once.

        Raises:
            LLMAuthenticationError: 401/403
            LLMRateLimitError: 429
            LLMBadRequestError: 400
            LLMServerError: 5xx
            LLMTimeoutError: request timed out
            LLMInvalidResponseError: response without choices
        """
        if max_tokens is None:
            max_tokens = self.max_tokens
        if temperature is None:
            temperature = self.temperature
        if timeout is None:
            timeout = self.timeout

        payload = self._build_payload(
            prompt, system, history, temperature, max_tokens, json_mode
        )
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            prompt_length=len(prompt),
            system_length=len(system) if system else 0,
            history_messages=len(history or []),
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            log.warning(
                "llm_timeout",
                provider=self.provider_name,
                client_type=self.client_type,
                timeout_seconds=timeout,
            )
            raise LLMTimeoutError(
                f"LLM call timed out (timeout={timeout}s)"
            ) from e
        except httpx.HTTPStatusError as e:
            error = map_http_error(self.provider_name, e)
            log.warning(
                "llm_http_error",
                provider=self.provider_name,
                client_type=self.client_type,
                status_code=e.response.status_code,
                error_type=type(error).__name__,
            )
            raise error from e
        except httpx.TransportError as e:
            log.warning(
                "llm_transport_error",
                provider=self.provider_name,
                error=str(e),
            )
            raise LLMServerError(f"{self.provider_name} unreachable: {e}", 503) from e
        except ValueError as e:
            raise LLMInvalidResponseError(
                f"{self.provider_name} returned a non-JSON body"
            ) from e

        latency_ms = (time.perf_counter() - start) * 1000

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise LLMInvalidResponseError(
                f"Invalid response format from {self.provider_name} API"
            )
        content = choices[0].get("message", {}).get("content") or ""

        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# OpenAI Client
# =============================================================================


class OpenAIClient(OpenAICompatibleClient):
    """
    OpenAI chat completions client.

    API Docs: https://platform.openai.com/docs/api-reference/chat
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        client_type: LLMClientType,
        api_key: Optional[str] = None,
    ):
        """Initialize OpenAI client."""
        api_key = api_key or settings.openai_api_key

        if not api_key:
            raise ValueError("OPENAI_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            client_type=client_type,
            base_url="https://api.openai.com/v1",
            provider_name="openai",
            api_key=api_key,
        )


# =============================================================================
# DeepSeek Client
# =============================================================================


class DeepSeekClient(OpenAICompatibleClient):
    """
    DeepSeek API client.

    API Docs: https://platform.deepseek.com/api-docs/
    Base URL: https://api.deepseek.com
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        client_type: LLMClientType,
        api_key: Optional[str] = None,
    ):
        """Initialize DeepSeek client."""
        api_key = api_key or settings.deepseek_api_key

        if not api_key:
            raise ValueError("DEEPSEEK_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            client_type=client_type,
            base_url="https://api.deepseek.com",
            provider_name="deepseek",
            api_key=api_key,
        )


# =============================================================================
# Client Factory Functions
# =============================================================================

PROVIDER_CLIENTS = {
    "openai": OpenAIClient,
    "deepseek": DeepSeekClient,
}


def get_llm_client(
    client_type: LLMClientType, api_key: Optional[str] = None
) -> LLMClient:
    """
    Factory for LLM client based on client type.

    Uses the defaults for the client type, with an optional provider
    override from settings (LLM_GENERATION_PROVIDER, LLM_FALLBACK_PROVIDER).

    Args:
        client_type: "generation" or "fallback"
        api_key: Per-session credential; falls back to the provider key in settings

    Returns:
        LLMClient instance configured for the client type

    Raises:
        ValueError: If unknown provider configured or API key missing
    """
    defaults = DEFAULTS_MAP[client_type]

    env_override_key = f"llm_{client_type}_provider"
    provider = getattr(settings, env_override_key, None) or defaults["provider"]

    client_cls = PROVIDER_CLIENTS.get(provider)
    if client_cls is None:
        raise ValueError(
            f"Unknown LLM provider '{provider}' for {client_type}. "
            f"Supported providers: {', '.join(PROVIDER_CLIENTS)}"
        )

    model = (
        defaults["model"]
        if provider == defaults["provider"]
        else PROVIDER_MODELS[provider]
    )

    return client_cls(
        model=model,
        temperature=defaults["temperature"],
        max_tokens=defaults["max_tokens"],
        timeout=defaults["timeout"],
        client_type=client_type,
        api_key=api_key,
    )


def get_generation_llm_client(api_key: Optional[str] = None) -> LLMClient:
    """Factory for the structured reply client."""
    return get_llm_client("generation", api_key=api_key)


def get_fallback_llm_client(api_key: Optional[str] = None) -> LLMClient:
    """Factory for the degraded plain-text reply client."""
    return get_llm_client("fallback", api_key=api_key)
