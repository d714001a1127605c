"""
Error taxonomy for Health Buddy.

Two families: health-data errors raised by the metric store and aggregation
layer, and provider errors raised by text generation backends. Provider
errors carry a user-facing explanation and a recovery hint in English and
Chinese.
"""

from enum import Enum
from typing import Optional


class HealthDataError(Exception):
    """Base class for metric store and aggregation failures."""
    pass


class DataUnavailable(HealthDataError):
    """The store has no samples for the requested window."""
    pass


class AuthorizationDenied(HealthDataError):
    """Read access to the health store has not been granted."""
    pass


class QueryFailed(HealthDataError):
    """A store read failed for a reason other than missing data."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RequestCancelled(Exception):
    """Raised when the caller cancels a turn before it completes."""
    pass


class LLMErrorKind(Enum):
    NETWORK_UNAVAILABLE = "network_unavailable"
    REQUEST_TIMEOUT = "request_timeout"
    RATE_LIMITED = "rate_limited"
    API_KEY_MISSING = "api_key_missing"
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_RESPONSE = "invalid_response"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


# (description, recovery guidance) per kind and language
_MESSAGES = {
    LLMErrorKind.NETWORK_UNAVAILABLE: {
        "en": ("No internet connection available",
               "Check your internet connection and try again."),
        "zh": ("当前没有可用的网络连接",
               "请检查网络连接后重试。"),
    },
    LLMErrorKind.REQUEST_TIMEOUT: {
        "en": ("Request timed out. Please try again.",
               "The request is taking longer than usual. Try again in a moment."),
        "zh": ("请求超时，请重试。",
               "请求耗时比平时更长，请稍后再试。"),
    },
    LLMErrorKind.RATE_LIMITED: {
        "en": ("Too many requests. Please wait a moment and try again.",
               "Please wait a few minutes before sending another message."),
        "zh": ("请求过于频繁，请稍候再试。",
               "请等待几分钟后再发送消息。"),
    },
    LLMErrorKind.API_KEY_MISSING: {
        "en": ("API configuration is missing",
               "Please check your AI service settings."),
        "zh": ("缺少API配置",
               "请检查AI服务设置。"),
    },
    LLMErrorKind.AUTHENTICATION_FAILED: {
        "en": ("Authentication failed. Please check your settings.",
               "Please check your AI service settings."),
        "zh": ("身份验证失败，请检查设置。",
               "请检查AI服务设置。"),
    },
    LLMErrorKind.INVALID_RESPONSE: {
        "en": ("Received an invalid response from the server",
               "Try rephrasing your question or ask something different."),
        "zh": ("服务器返回了无效的响应",
               "请尝试换一种方式提问。"),
    },
    LLMErrorKind.SERVER_ERROR: {
        "en": ("Server error ({code}). Please try again later.",
               "The AI service is temporarily unavailable. Try again later."),
        "zh": ("服务器错误（{code}），请稍后重试。",
               "AI服务暂时不可用，请稍后再试。"),
    },
    LLMErrorKind.UNKNOWN: {
        "en": ("An unexpected error occurred: {cause}",
               "Try restarting the app or contact support if the issue persists."),
        "zh": ("发生意外错误：{cause}",
               "请尝试重启应用，如问题持续请联系支持。"),
    },
}


class LLMProviderError(Exception):
    """
    Exception raised for text generation provider errors.

    Subclasses set `kind` and `retryable`. Only transient failures are
    retryable; configuration and response-format problems are not.
    """

    kind: LLMErrorKind = LLMErrorKind.UNKNOWN
    retryable: bool = True

    def description(self, lang: str = "en") -> str:
        template = _MESSAGES[self.kind]["zh" if lang.startswith("zh") else "en"][0]
        return template.format(
            code=getattr(self, "code", ""),
            cause=getattr(self, "cause", None) or self,
        )

    def recovery_guidance(self, lang: str = "en") -> str:
        return _MESSAGES[self.kind]["zh" if lang.startswith("zh") else "en"][1]


class NetworkUnavailable(LLMProviderError):
    kind = LLMErrorKind.NETWORK_UNAVAILABLE


class RequestTimeout(LLMProviderError):
    kind = LLMErrorKind.REQUEST_TIMEOUT


class RateLimited(LLMProviderError):
    kind = LLMErrorKind.RATE_LIMITED


class ApiKeyMissing(LLMProviderError):
    kind = LLMErrorKind.API_KEY_MISSING
    retryable = False


class AuthenticationFailed(LLMProviderError):
    kind = LLMErrorKind.AUTHENTICATION_FAILED
    retryable = False


class InvalidResponse(LLMProviderError):
    kind = LLMErrorKind.INVALID_RESPONSE
    retryable = False


class ServerError(LLMProviderError):
    kind = LLMErrorKind.SERVER_ERROR

    def __init__(self, code: int, body: str = ""):
        super().__init__(f"Server returned HTTP {code}")
        self.code = code
        self.body = body


class UnknownProviderError(LLMProviderError):
    kind = LLMErrorKind.UNKNOWN

    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause


class LocalModelError(Exception):
    """Raised when the local text generator cannot produce a response."""
    pass


def as_provider_error(exc: BaseException) -> LLMProviderError:
    """Wrap any exception in the provider taxonomy."""
    if isinstance(exc, LLMProviderError):
        return exc
    if isinstance(exc, TimeoutError):
        return RequestTimeout(str(exc))
    if isinstance(exc, ConnectionError):
        return NetworkUnavailable(str(exc))
    return UnknownProviderError(exc)
