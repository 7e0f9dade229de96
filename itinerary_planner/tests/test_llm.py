import json
from unittest.mock import MagicMock, patch

import groq
import httpx
import pytest

from itinerary_planner.llm.config import LLMConfig
from itinerary_planner.llm.groq_client import GroqCompletionClient
from itinerary_planner.pipeline.errors import DependencyRejected, DependencyUnavailable

ENABLED_CONFIG = LLMConfig(api_key="test-key", enabled=True)
DISABLED_CONFIG = LLMConfig(api_key="test-key", enabled=False)

_REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def _mock_groq_response(content):
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@patch("itinerary_planner.llm.groq_client.Groq")
def test_complete_returns_content(mock_groq_cls):
    body = json.dumps({"items": [{"slug": "moma", "sequence": 1}]})
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(body)

    result = GroqCompletionClient(ENABLED_CONFIG).complete("prompt", '{"items": []}')

    assert result == body
    kwargs = mock_groq_cls.return_value.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == ENABLED_CONFIG.model
    assert kwargs["response_format"] == {"type": "json_object"}
    assert '{"items": []}' in kwargs["messages"][0]["content"]
    assert mock_groq_cls.call_args.kwargs["max_retries"] == 0


@patch("itinerary_planner.llm.groq_client.Groq")
def test_timeout_is_unavailable(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = groq.APITimeoutError(request=_REQUEST)

    with pytest.raises(DependencyUnavailable) as exc_info:
        GroqCompletionClient(ENABLED_CONFIG).complete("prompt", "{}")

    assert exc_info.value.service == "completion"


@patch("itinerary_planner.llm.groq_client.Groq")
def test_connection_error_is_unavailable(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = groq.APIConnectionError(request=_REQUEST)

    with pytest.raises(DependencyUnavailable):
        GroqCompletionClient(ENABLED_CONFIG).complete("prompt", "{}")


@patch("itinerary_planner.llm.groq_client.Groq")
def test_status_error_is_rejected(mock_groq_cls):
    response = httpx.Response(429, request=_REQUEST)
    mock_groq_cls.return_value.chat.completions.create.side_effect = groq.RateLimitError(
        "rate limited", response=response, body=None,
    )

    with pytest.raises(DependencyRejected) as exc_info:
        GroqCompletionClient(ENABLED_CONFIG).complete("prompt", "{}")

    assert exc_info.value.status_code == 429


@patch("itinerary_planner.llm.groq_client.Groq")
def test_empty_completion_is_rejected(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response("")

    with pytest.raises(DependencyRejected):
        GroqCompletionClient(ENABLED_CONFIG).complete("prompt", "{}")


@patch("itinerary_planner.llm.groq_client.Groq")
def test_disabled_client_never_calls_api(mock_groq_cls):
    client = GroqCompletionClient(DISABLED_CONFIG)

    assert client.available is False
    with pytest.raises(DependencyUnavailable):
        client.complete("prompt", "{}")
    mock_groq_cls.assert_not_called()


def test_missing_key_is_unavailable():
    assert GroqCompletionClient(LLMConfig(api_key="")).available is False
