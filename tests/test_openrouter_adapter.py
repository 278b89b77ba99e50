"""Tests for the OpenRouter adapter and retry policy."""

import asyncio
import random
from unittest.mock import Mock, patch

import pytest
import requests

from shared.adapters.openrouter_adapter import (
    OpenRouterAdapter,
    OpenRouterError,
    OpenRouterTimeoutError,
    chat,
    is_retryable_error,
    resolve_model_id,
)
from shared.utils.retry import compute_backoff_delay, retry_with_backoff

OK_BODY = {
    "model": "openai/gpt-4o-mini",
    "choices": [{"message": {"content": '{"task": "connections", "action": "give_up"}'}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 100, "completion_tokens": 20, "total_tokens": 120, "cost": 0.002},
}


def make_response(status_code=200, body=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.reason = reason
    response.json.return_value = body if body is not None else {}
    response.text = str(body)
    return response


def make_adapter(tmp_path):
    mappings = tmp_path / "model_mappings.yml"
    mappings.write_text("models:\n  non_thinking:\n    mini: openai/gpt-4o-mini\n")
    adapter = OpenRouterAdapter(api_key="test-key", model_mappings_file=str(mappings))
    adapter.delays = []

    async def fake_sleep(delay):
        adapter.delays.append(delay)

    adapter._sleep = fake_sleep
    return adapter


class TestRetryClassification:
    """Test cases for deciding which errors are retried."""

    @pytest.mark.parametrize("status,retryable", [
        (429, True),
        (408, True),
        (500, True),
        (503, True),
        (400, False),
        (401, False),
        (404, False),
        (0, False),
    ])
    def test_status_codes(self, status, retryable):
        """Test rate limits, timeouts and 5xx are retryable."""
        assert OpenRouterError("x", status).retryable is retryable
        assert is_retryable_error(OpenRouterError("x", status)) is retryable

    def test_timeout_error_is_408(self):
        """Test that timeouts carry status 408."""
        error = OpenRouterTimeoutError("slow")
        assert error.status_code == 408
        assert error.retryable

    def test_other_exceptions_not_retryable(self):
        """Test that unrelated exceptions are never retried."""
        assert not is_retryable_error(ValueError("boom"))


class TestBackoff:
    """Test cases for backoff delays."""

    def test_delay_grows_exponentially(self):
        """Test base * 2^attempt plus jitter in [0, 1)."""
        rng = random.Random(0)
        for attempt in range(3):
            delay = compute_backoff_delay(attempt, base_delay=1.0, max_delay=30.0, rng=rng)
            assert 2 ** attempt <= delay < 2 ** attempt + 1

    def test_delay_is_capped(self):
        """Test that delays never exceed max_delay."""
        assert compute_backoff_delay(10, base_delay=1.0, max_delay=30.0) == 30.0

    def test_retry_succeeds_after_transient_errors(self):
        """Test that retryable failures are retried until success."""
        calls = []
        delays = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OpenRouterError("rate limited", 429)
            return "ok"

        async def fake_sleep(delay):
            delays.append(delay)

        result = asyncio.run(retry_with_backoff(flaky, is_retryable_error, max_attempts=3, sleep=fake_sleep))
        assert result == "ok"
        assert len(calls) == 3
        assert len(delays) == 2

    def test_non_retryable_raises_immediately(self):
        """Test that a 400 is not retried."""
        calls = []

        async def bad_request():
            calls.append(1)
            raise OpenRouterError("bad request", 400)

        async def fake_sleep(delay):
            raise AssertionError("should not sleep")

        with pytest.raises(OpenRouterError):
            asyncio.run(retry_with_backoff(bad_request, is_retryable_error, max_attempts=3, sleep=fake_sleep))
        assert len(calls) == 1


class TestChat:
    """Test cases for the blocking chat() call."""

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_payload(self, mock_post):
        """Test that the request carries model, params and response format."""
        mock_post.return_value = make_response(body=OK_BODY)
        response_format = {"type": "json_schema", "json_schema": {"name": "x"}}

        data = chat(
            [{"role": "user", "content": "hi"}],
            "openai/gpt-4o-mini",
            temperature=0.0,
            max_tokens=256,
            top_p=0.9,
            response_format=response_format,
            timeout=5.0,
            api_key="test-key",
        )

        assert data == OK_BODY
        payload = mock_post.call_args.kwargs["json"]
        assert payload["model"] == "openai/gpt-4o-mini"
        assert payload["max_tokens"] == 256
        assert payload["top_p"] == 0.9
        assert payload["response_format"] == response_format
        assert payload["usage"] == {"include": True}
        assert mock_post.call_args.kwargs["timeout"] == 5.0
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-key"

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_http_error_carries_status(self, mock_post):
        """Test that HTTP errors keep their status code and message."""
        mock_post.return_value = make_response(429, {"error": {"message": "Rate limit exceeded"}}, "Too Many")
        with pytest.raises(OpenRouterError) as exc_info:
            chat([], "m", api_key="k")
        assert exc_info.value.status_code == 429
        assert "Rate limit exceeded" in str(exc_info.value)

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_requests_timeout(self, mock_post):
        """Test that a requests timeout becomes OpenRouterTimeoutError."""
        mock_post.side_effect = requests.Timeout("read timed out")
        with pytest.raises(OpenRouterTimeoutError):
            chat([], "m", api_key="k")

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_connection_error_not_retryable(self, mock_post):
        """Test that connection failures have status 0."""
        mock_post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(OpenRouterError) as exc_info:
            chat([], "m", api_key="k")
        assert exc_info.value.status_code == 0
        assert not exc_info.value.retryable

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_error_in_ok_body(self, mock_post):
        """Test that an upstream error inside a 200 body keeps its code."""
        mock_post.return_value = make_response(body={"error": {"code": 502, "message": "upstream down"}})
        with pytest.raises(OpenRouterError) as exc_info:
            chat([], "m", api_key="k")
        assert exc_info.value.status_code == 502

    @pytest.mark.parametrize("body", [
        [OK_BODY],
        {"choices": ["text"]},
        {"choices": {"message": {"content": "x"}}},
        {"choices": [{"message": "x"}]},
        {"choices": [{"message": {"content": [{"type": "text", "text": "x"}]}}]},
        {"choices": [{"message": {"content": "x"}}], "usage": "lots"},
        {"choices": [{"message": {"content": "x"}}], "usage": {"prompt_tokens": "ten", "completion_tokens": 1}},
        {"choices": [{"message": {"content": "x"}}], "usage": {"prompt_tokens": 1, "completion_tokens": 1, "cost": "cheap"}},
        {"error": "upstream down"},
    ])
    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_unexpected_shape_is_openrouter_error(self, mock_post, body):
        """Test that a 200 body of the wrong shape raises a non-retryable OpenRouterError."""
        mock_post.return_value = make_response(body=body)
        with pytest.raises(OpenRouterError) as exc_info:
            chat([], "m", api_key="k")
        assert exc_info.value.status_code == 0
        assert not exc_info.value.retryable


class TestOpenRouterAdapter:
    """Test cases for the async adapter."""

    def test_resolve_model(self, tmp_path):
        """Test alias resolution and pass-through of full ids."""
        adapter = make_adapter(tmp_path)
        assert adapter.resolve_model("mini") == "openai/gpt-4o-mini"
        assert adapter.resolve_model("anthropic/claude-sonnet-4") == "anthropic/claude-sonnet-4"

    def test_resolve_model_id_flat_mapping(self):
        """Test that flat mappings work too."""
        assert resolve_model_id("x", {"x": "vendor/x-1"}) == "vendor/x-1"

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_complete_returns_content_and_usage(self, mock_post, tmp_path):
        """Test that complete() returns content, usage and latency."""
        mock_post.return_value = make_response(body=OK_BODY)
        adapter = make_adapter(tmp_path)

        response = asyncio.run(adapter.complete("mini", [{"role": "user", "content": "hi"}]))

        assert response.content == OK_BODY["choices"][0]["message"]["content"]
        assert response.usage.prompt_tokens == 100
        assert response.usage.completion_tokens == 20
        assert response.usage.total_tokens == 120
        assert response.usage.cost == 0.002
        assert response.latency_ms >= 0
        assert mock_post.call_args.kwargs["json"]["model"] == "openai/gpt-4o-mini"

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_complete_without_cost(self, mock_post, tmp_path):
        """Test that a missing cost is reported as None."""
        body = dict(OK_BODY, usage={"prompt_tokens": 5, "completion_tokens": 1})
        mock_post.return_value = make_response(body=body)
        response = asyncio.run(make_adapter(tmp_path).complete("mini", []))
        assert response.usage.total_tokens == 6
        assert response.usage.cost is None

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_complete_retries_server_errors(self, mock_post, tmp_path):
        """Test that two 503s followed by success makes three calls."""
        mock_post.side_effect = [
            make_response(503, {}, "Unavailable"),
            make_response(503, {}, "Unavailable"),
            make_response(body=OK_BODY),
        ]
        adapter = make_adapter(tmp_path)

        response = asyncio.run(adapter.complete("mini", [], max_attempts=3))

        assert response.usage.total_tokens == 120
        assert mock_post.call_count == 3
        assert len(adapter.delays) == 2
        assert 1.0 <= adapter.delays[0] < 2.0
        assert 2.0 <= adapter.delays[1] < 3.0

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_complete_gives_up_after_max_attempts(self, mock_post, tmp_path):
        """Test that the last retryable error propagates."""
        mock_post.return_value = make_response(429, {}, "Too Many")
        adapter = make_adapter(tmp_path)

        with pytest.raises(OpenRouterError) as exc_info:
            asyncio.run(adapter.complete("mini", [], max_attempts=3))

        assert exc_info.value.status_code == 429
        assert mock_post.call_count == 3

    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_complete_does_not_retry_client_errors(self, mock_post, tmp_path):
        """Test that a 401 is raised after a single call."""
        mock_post.return_value = make_response(401, {"error": {"message": "bad key"}}, "Unauthorized")
        adapter = make_adapter(tmp_path)

        with pytest.raises(OpenRouterError):
            asyncio.run(adapter.complete("mini", []))

        assert mock_post.call_count == 1
        assert adapter.delays == []

    def test_missing_api_key(self, monkeypatch):
        """Test that constructing without a key fails clearly."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
            OpenRouterAdapter()
