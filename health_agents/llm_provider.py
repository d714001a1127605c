"""
Remote Text Providers for Health Buddy

Abstraction over remote language models. Providers translate transport
failures into the LLMProviderError taxonomy so the orchestrator can decide
what to retry and what to explain to the user.

Supported providers:
- gateway: HTTP inference gateway (bearer token, JSON body)
- litellm: any model litellm can route to
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

from .errors import (
    ApiKeyMissing,
    AuthenticationFailed,
    InvalidResponse,
    LLMProviderError,
    NetworkUnavailable,
    RateLimited,
    RequestTimeout,
    ServerError,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)

REPLY_FIELDS = ("response", "text", "output_text", "answer")


@dataclass
class LLMMessage:
    role: str  # "user", "assistant" or "system"
    content: str


class RemoteTextProvider(ABC):
    """
    Abstract base class for remote text providers.

    complete() performs exactly one attempt; retrying is the caller's job.
    """

    provider_name: str = "base"

    @abstractmethod
    def complete(self, messages: List[LLMMessage]) -> str:
        """
        Generate a reply for a conversation.

        Args:
            messages: Conversation so far, oldest first

        Returns:
            Reply text, trimmed

        Raises:
            LLMProviderError: On any failure
        """
        pass


def build_url(base_url: str, path: str) -> str:
    """Join a base URL and a path with exactly one slash between them."""
    base = base_url.strip().rstrip("/")
    path = path.strip().lstrip("/")
    if not path:
        return base
    return f"{base}/{path}"


def format_prompt(messages: List[LLMMessage]) -> str:
    """Flatten a conversation into 'User: ...' / 'Assistant: ...' lines."""
    return "\n".join(f"{m.role.capitalize()}: {m.content}" for m in messages)


def last_user_message(messages: List[LLMMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def error_for_status(code: int, body: str = "") -> Optional[LLMProviderError]:
    """Map an HTTP status code to a provider error, or None for 2xx."""
    if 200 <= code < 300:
        return None
    if code in (401, 403):
        return AuthenticationFailed(f"Gateway rejected credentials (HTTP {code})")
    if code == 429:
        return RateLimited("Gateway rate limit reached")
    if code == 408:
        return RequestTimeout("Gateway timed out")
    return ServerError(code, body)


class GatewayTextProvider(RemoteTextProvider):
    """Provider for an HTTP inference gateway."""

    provider_name = "gateway"

    def __init__(
        self,
        gateway_url: str,
        model_path: str = "",
        token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the gateway provider.

        Args:
            gateway_url: Base URL of the gateway
            model_path: Model route appended to the base URL
            token: Bearer token; a missing token fails each call with ApiKeyMissing
            timeout: Per-request timeout in seconds
            session: Optional requests.Session (for connection reuse and tests)
        """
        self.url = build_url(gateway_url, model_path)
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_search_endpoint(self) -> bool:
        return "ai-search" in self.url

    def _body(self, messages: List[LLMMessage]) -> dict:
        if self.is_search_endpoint:
            return {"query": last_user_message(messages)}
        return {"prompt": format_prompt(messages)}

    def complete(self, messages: List[LLMMessage]) -> str:
        if not self.token:
            raise ApiKeyMissing("Gateway token is not configured")

        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

        try:
            response = self.session.post(
                self.url,
                json=self._body(messages),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise RequestTimeout(str(e))
        except requests.ConnectionError as e:
            raise NetworkUnavailable(str(e))
        except requests.RequestException as e:
            raise UnknownProviderError(e)

        error = error_for_status(response.status_code, response.text[:200])
        if error is not None:
            logger.warning(f"[GATEWAY] HTTP {response.status_code} from {self.url}")
            raise error

        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidResponse(f"Gateway returned a non-JSON body: {e}")

        result = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(result, dict):
            raise InvalidResponse("Gateway reply has no result object")

        for field_name in REPLY_FIELDS:
            value = result.get(field_name)
            if isinstance(value, str) and value.strip():
                return value.strip()

        raise InvalidResponse("Gateway reply had no text")


class LiteLLMTextProvider(RemoteTextProvider):
    """Provider backed by litellm.completion."""

    provider_name = "litellm"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: float = 30.0,
        temperature: float = 0.7,
    ):
        self.model = model or self.DEFAULT_MODEL
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout
        self.temperature = temperature

    def complete(self, messages: List[LLMMessage]) -> str:
        from litellm import completion

        completion_kwargs = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "timeout": self.timeout,
            "temperature": self.temperature,
        }
        if self.api_key:
            completion_kwargs["api_key"] = self.api_key
        if self.api_base:
            completion_kwargs["api_base"] = self.api_base

        try:
            response = completion(**completion_kwargs)
        except Exception as e:
            raise map_litellm_error(e)

        try:
            content = response.choices[0].message.content
        except (IndexError, AttributeError) as e:
            raise InvalidResponse(f"Unexpected response format: {e}")

        if not content or not content.strip():
            raise InvalidResponse("Model returned an empty reply")
        return content.strip()


def map_litellm_error(exc: Exception) -> LLMProviderError:
    """Translate a litellm exception into the provider taxonomy."""
    import litellm

    if isinstance(exc, LLMProviderError):
        return exc
    if isinstance(exc, litellm.Timeout):
        return RequestTimeout(str(exc))
    if isinstance(exc, litellm.APIConnectionError):
        return NetworkUnavailable(str(exc))
    if isinstance(exc, litellm.AuthenticationError):
        return AuthenticationFailed(str(exc))
    if isinstance(exc, litellm.RateLimitError):
        return RateLimited(str(exc))

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        mapped = error_for_status(status, str(exc))
        if mapped is not None:
            return mapped
    if isinstance(exc, TimeoutError):
        return RequestTimeout(str(exc))
    if isinstance(exc, ConnectionError):
        return NetworkUnavailable(str(exc))
    return UnknownProviderError(exc)


class LLMFactory:
    """
    Registry of remote provider classes.

    Every call builds a fresh provider; nothing is cached between calls.
    """

    _provider_registry: dict = {}

    @classmethod
    def register_provider(cls, name: str, provider_class):
        cls._provider_registry[name.lower()] = provider_class

    @classmethod
    def available_providers(cls) -> List[str]:
        return sorted(cls._provider_registry.keys())

    @classmethod
    def get_provider(cls, provider_type: Optional[str] = None, **kwargs) -> RemoteTextProvider:
        """
        Create a provider instance.

        Args:
            provider_type: Registered provider name. Reads HEALTH_LLM_PROVIDER
                if not provided, defaulting to "gateway"
            **kwargs: Provider-specific configuration options

        Raises:
            ValueError: If the provider name is not registered
        """
        provider_str = (provider_type or os.environ.get("HEALTH_LLM_PROVIDER", "gateway")).lower().strip()
        provider_class = cls._provider_registry.get(provider_str)
        if provider_class is None:
            supported = ", ".join(cls.available_providers())
            raise ValueError(f"Unsupported provider: {provider_str}. Supported: {supported}")
        logger.info(f"Creating {provider_str} text provider")
        return provider_class(**kwargs)

    @classmethod
    def from_settings(cls, settings) -> RemoteTextProvider:
        """Build the provider named by settings.llm_provider."""
        if settings.llm_provider == "litellm":
            return cls.get_provider(
                "litellm",
                model=settings.litellm_model,
                timeout=settings.request_timeout,
            )
        return cls.get_provider(
            settings.llm_provider,
            gateway_url=settings.gateway_url,
            model_path=settings.model_path,
            token=settings.gateway_token,
            timeout=settings.request_timeout,
        )


LLMFactory.register_provider("gateway", GatewayTextProvider)
LLMFactory.register_provider("litellm", LiteLLMTextProvider)
