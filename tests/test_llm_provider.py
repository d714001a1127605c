"""Tests for remote text providers."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from health_agents.config import Settings
from health_agents.errors import (
    ApiKeyMissing,
    AuthenticationFailed,
    InvalidResponse,
    NetworkUnavailable,
    RateLimited,
    RequestTimeout,
    ServerError,
    UnknownProviderError,
)
from health_agents.llm_provider import (
    GatewayTextProvider,
    LiteLLMTextProvider,
    LLMFactory,
    LLMMessage,
    build_url,
    error_for_status,
    format_prompt,
    map_litellm_error,
)

MESSAGES = [
    LLMMessage("system", "You are a health assistant."),
    LLMMessage("user", "How did I sleep?"),
]


def fake_response(status=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def gateway(session, model_path="v1/chat", token="secret"):
    return GatewayTextProvider("https://gw.example.com/", model_path, token=token, session=session)


class TestHelpers:
    @pytest.mark.parametrize("base,path,expected", [
        ("https://gw.example.com/", "/v1/chat", "https://gw.example.com/v1/chat"),
        ("https://gw.example.com", "v1/chat", "https://gw.example.com/v1/chat"),
        (" https://gw.example.com// ", "", "https://gw.example.com"),
    ])
    def test_build_url(self, base, path, expected):
        assert build_url(base, path) == expected

    def test_format_prompt(self):
        assert format_prompt(MESSAGES) == "System: You are a health assistant.\nUser: How did I sleep?"

    @pytest.mark.parametrize("code,error", [
        (401, AuthenticationFailed),
        (403, AuthenticationFailed),
        (429, RateLimited),
        (408, RequestTimeout),
        (500, ServerError),
        (418, ServerError),
    ])
    def test_error_for_status(self, code, error):
        assert isinstance(error_for_status(code), error)

    def test_success_status(self):
        assert error_for_status(204) is None


class TestGatewayTextProvider:
    def test_posts_prompt_with_bearer_token(self):
        session = MagicMock()
        session.post.return_value = fake_response(payload={"result": {"response": "  You slept well.  "}, "success": True})

        reply = gateway(session).complete(MESSAGES)

        assert reply == "You slept well."
        args, kwargs = session.post.call_args
        assert args[0] == "https://gw.example.com/v1/chat"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["json"] == {"prompt": format_prompt(MESSAGES)}

    def test_search_endpoint_sends_last_user_message(self):
        session = MagicMock()
        session.post.return_value = fake_response(payload={"result": {"answer": "ok"}})

        gateway(session, model_path="ai-search/health").complete(MESSAGES)

        assert session.post.call_args.kwargs["json"] == {"query": "How did I sleep?"}

    def test_reply_field_fallbacks(self):
        session = MagicMock()
        session.post.return_value = fake_response(payload={"result": {"response": "", "output_text": "found"}})
        assert gateway(session).complete(MESSAGES) == "found"

    def test_missing_token(self):
        session = MagicMock()
        with pytest.raises(ApiKeyMissing):
            gateway(session, token=None).complete(MESSAGES)
        session.post.assert_not_called()

    def test_http_error_status(self):
        session = MagicMock()
        session.post.return_value = fake_response(status=503, text="unavailable")

        with pytest.raises(ServerError) as excinfo:
            gateway(session).complete(MESSAGES)
        assert excinfo.value.code == 503

    @pytest.mark.parametrize("raised,expected", [
        (requests.Timeout("slow"), RequestTimeout),
        (requests.ConnectionError("down"), NetworkUnavailable),
        (requests.RequestException("odd"), UnknownProviderError),
    ])
    def test_transport_errors(self, raised, expected):
        session = MagicMock()
        session.post.side_effect = raised
        with pytest.raises(expected):
            gateway(session).complete(MESSAGES)

    @pytest.mark.parametrize("payload", [
        ValueError("not json"),
        ["a", "list"],
        {"response": "top level"},
        {"result": {"response": "   "}},
        {"result": "text"},
        {},
    ])
    def test_invalid_replies(self, payload):
        session = MagicMock()
        session.post.return_value = fake_response(payload=payload)
        with pytest.raises(InvalidResponse):
            gateway(session).complete(MESSAGES)


class TestLiteLLMTextProvider:
    def test_completion_reply(self, monkeypatch):
        import litellm

        captured = {}

        def fake_completion(**kwargs):
            captured.update(kwargs)
            message = SimpleNamespace(content=" Sleep looks steady. ")
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

        monkeypatch.setattr(litellm, "completion", fake_completion)

        reply = LiteLLMTextProvider(model="ollama/llama3.2", api_base="http://localhost:11434").complete(MESSAGES)

        assert reply == "Sleep looks steady."
        assert captured["model"] == "ollama/llama3.2"
        assert captured["api_base"] == "http://localhost:11434"
        assert captured["messages"][1] == {"role": "user", "content": "How did I sleep?"}

    def test_empty_reply(self, monkeypatch):
        import litellm

        message = SimpleNamespace(content="")
        monkeypatch.setattr(
            litellm, "completion",
            lambda **kwargs: SimpleNamespace(choices=[SimpleNamespace(message=message)]),
        )
        with pytest.raises(InvalidResponse):
            LiteLLMTextProvider().complete(MESSAGES)

    def test_status_code_errors_are_mapped(self):
        class GatewayBoom(Exception):
            status_code = 502

        error = map_litellm_error(GatewayBoom("bad gateway"))
        assert isinstance(error, ServerError)
        assert error.code == 502

    def test_builtin_errors_are_mapped(self):
        assert isinstance(map_litellm_error(TimeoutError("t")), RequestTimeout)
        assert isinstance(map_litellm_error(RuntimeError("x")), UnknownProviderError)


class TestLLMFactory:
    def test_registered_providers(self):
        assert {"gateway", "litellm"} <= set(LLMFactory.available_providers())

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unsupported provider"):
            LLMFactory.get_provider("carrier-pigeon")

    def test_env_selects_provider(self, monkeypatch):
        monkeypatch.setenv("HEALTH_LLM_PROVIDER", "litellm")
        assert isinstance(LLMFactory.get_provider(), LiteLLMTextProvider)

    def test_from_settings(self):
        settings = Settings(gateway_url="https://gw.example.com", model_path="v1/chat", gateway_token="t")
        provider = LLMFactory.from_settings(settings)

        assert isinstance(provider, GatewayTextProvider)
        assert provider.url == "https://gw.example.com/v1/chat"

    def test_from_settings_litellm(self):
        provider = LLMFactory.from_settings(Settings(llm_provider="litellm", litellm_model="gpt-4o"))
        assert provider.model == "gpt-4o"
