"""OpenRouter API adapter for LLM calls.

This is the agent client used by the run engine. It combines:
- Function-based API (``chat``) for a single blocking HTTP call
- Class-based API (``OpenRouterAdapter``) exposing an async ``complete()``
  that runs the blocking call off the event loop, bounds it with a timeout
  and retries rate-limit, timeout and server errors with backoff
- Model alias resolution from model_mappings.yml
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import yaml

from ..utils.retry import retry_with_backoff
from ..utils.timing import Timer
from ..utils.tokens import extract_cost_info, extract_token_usage

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterError(Exception):
    """Error returned by (or while talking to) the OpenRouter API.

    ``status_code`` is the HTTP status, or 0 for transport failures and
    malformed responses.
    """

    def __init__(self, message: str, status_code: int = 0, response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status_code)


class OpenRouterTimeoutError(OpenRouterError):
    """The request did not complete within the step timeout."""

    def __init__(self, message: str):
        super().__init__(message, status_code=408)


def is_retryable_status(status_code: int) -> bool:
    """Rate limits, request timeouts and server errors are retryable."""
    return status_code in (408, 429) or 500 <= status_code < 600


def is_retryable_error(error: BaseException) -> bool:
    """Classify an exception raised by ``chat``/``complete``."""
    if isinstance(error, OpenRouterError):
        return error.retryable
    return False


def _get_shared_inputs_path() -> Path:
    """Get path to shared/inputs directory."""
    return Path(__file__).parent.parent / "inputs"


def _load_model_mappings(mappings_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load model mappings from YAML configuration file."""
    if mappings_file is None:
        mappings_file = _get_shared_inputs_path() / "model_mappings.yml"

    try:
        with open(mappings_file, "r") as f:
            data = yaml.safe_load(f) or {}
        return data.get("models", {})
    except FileNotFoundError:
        logger.warning(f"Model mappings file not found: {mappings_file}")
        return {}


def _flatten_mappings(mappings: Dict[str, Any]) -> Dict[str, str]:
    """Flatten hierarchical mappings to a simple alias -> model id dict."""
    flat: Dict[str, str] = {}
    for key, value in mappings.items():
        if isinstance(value, dict):
            flat.update(value)
        elif isinstance(value, str):
            flat[key] = value
    return flat


def resolve_model_id(model_name: str, mappings: Optional[Dict[str, Any]] = None) -> str:
    """Resolve a short model alias to an OpenRouter model ID.

    Args:
        model_name: Alias (e.g., "gemini-flash") or full model ID
        mappings: Optional pre-loaded mappings dict

    Returns:
        OpenRouter model ID (e.g., "google/gemini-2.5-flash"). Names that are
        not in the mappings are assumed to already be full model IDs.
    """
    if mappings is None:
        mappings = _load_model_mappings()
    return _flatten_mappings(mappings).get(model_name, model_name)


def _get_api_key() -> str:
    """Get OpenRouter API key from environment."""
    api_key = os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        raise ValueError("OPENROUTER_API_KEY environment variable not set")
    return api_key


def chat(
    messages: List[Dict[str, str]],
    model: str,
    temperature: float = 0.0,
    max_tokens: int = 1024,
    top_p: Optional[float] = None,
    response_format: Optional[Dict[str, Any]] = None,
    include_usage: bool = True,
    timeout: float = 60.0,
    api_key: Optional[str] = None,
) -> Dict:
    """
    Call OpenRouter Chat Completions API once (blocking).

    Args:
        messages: List of message objects with 'role' and 'content'
        model: OpenRouter model ID (e.g., 'openai/gpt-4o-mini')
        temperature: Sampling temperature
        max_tokens: Completion token limit
        top_p: Optional nucleus sampling parameter
        response_format: Optional structured-output format
            ({"type": "json_schema", "json_schema": {...}})
        include_usage: Ask OpenRouter to report usage and cost
        timeout: Request timeout in seconds
        api_key: API key (defaults to OPENROUTER_API_KEY)

    Returns:
        Raw API response JSON including usage and cost info

    Raises:
        OpenRouterTimeoutError: The request timed out
        OpenRouterError: Any other transport, HTTP or response-shape error
    """
    headers = {
        "Authorization": f"Bearer {api_key or _get_api_key()}",
        "Content-Type": "application/json",
        "HTTP-Referer": "https://github.com/puzzle-arena/puzzle-arena",
        "X-Title": "Puzzle Arena",
    }

    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }
    if top_p is not None:
        payload["top_p"] = top_p
    if response_format is not None:
        payload["response_format"] = response_format
    if include_usage:
        payload["usage"] = {"include": True}

    try:
        response = requests.post(OPENROUTER_URL, json=payload, headers=headers, timeout=timeout)
    except requests.Timeout as e:
        raise OpenRouterTimeoutError(f"Request timed out after {timeout:.0f}s") from e
    except requests.RequestException as e:
        raise OpenRouterError(f"Request failed: {e}") from e

    if not response.ok:
        message = f"OpenRouter API error: {response.status_code} {response.reason}"
        try:
            error_msg = response.json().get("error", {}).get("message", "")
            if error_msg:
                message = f"OpenRouter API error: {error_msg}"
            # Data policy misconfiguration shows up as a 404 on otherwise valid models
            if "data policy" in error_msg.lower() and response.status_code == 404:
                message += " (configure your data policy at https://openrouter.ai/settings/privacy)"
        except (ValueError, AttributeError):
            pass
        raise OpenRouterError(message, response.status_code, response.text)

    try:
        response_data = response.json()
    except ValueError as e:
        raise OpenRouterError("Malformed JSON in OpenRouter response", 0, response.text) from e

    if not isinstance(response_data, dict):
        raise OpenRouterError(
            f"Unexpected OpenRouter response: expected an object, got {type(response_data).__name__}",
            0,
            response.text,
        )

    if not response_data.get("choices"):
        # OpenRouter sometimes reports upstream failures in a 200 body
        error = response_data.get("error") or {}
        if not isinstance(error, dict):
            error = {"message": str(error)}
        code = error.get("code")
        status = code if isinstance(code, int) else 0
        raise OpenRouterError(
            f"No choices returned from OpenRouter: {error.get('message', 'empty response')}",
            status,
            response.text,
        )

    problem = _shape_problem(response_data)
    if problem:
        raise OpenRouterError(f"Unexpected OpenRouter response: {problem}", 0, response.text)

    return response_data


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _shape_problem(response_data: Dict[str, Any]) -> Optional[str]:
    """Describe the first field that does not have the shape ``_to_response`` reads, or None."""
    choices = response_data["choices"]
    if not isinstance(choices, list):
        return "choices is not a list"
    choice = choices[0]
    if not isinstance(choice, dict):
        return "choices[0] is not an object"
    message = choice.get("message")
    if message is not None and not isinstance(message, dict):
        return "choices[0].message is not an object"
    content = (message or {}).get("content")
    if content is not None and not isinstance(content, str):
        return f"message content is {type(content).__name__}, not a string"

    usage = response_data.get("usage")
    if usage is None:
        return None
    if not isinstance(usage, dict):
        return "usage is not an object"
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = usage.get(key)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
            return f"usage.{key} is not an integer"
    cost = usage.get("cost")
    if cost is not None and not _is_number(cost):
        return "usage.cost is not a number"
    cost_details = usage.get("cost_details")
    if cost_details is not None and not isinstance(cost_details, dict):
        return "usage.cost_details is not an object"
    return None


@dataclass
class AgentUsage:
    """Token usage and cost for one completed call."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: Optional[float] = None


@dataclass
class AgentResponse:
    """Result of one successful agent call."""
    content: str
    usage: Optional[AgentUsage]
    latency_ms: float
    model: str = ""
    finish_reason: Optional[str] = None


class OpenRouterAdapter:
    """Async agent client for calling models through OpenRouter.

    Caches model mappings and the API key, and applies the retry policy
    (up to ``max_attempts`` attempts, exponential backoff with jitter) to
    retryable errors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_mappings_file: Optional[str] = None,
        include_usage: bool = True,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ):
        self.api_key = api_key or _get_api_key()
        self.model_mappings = _load_model_mappings(Path(model_mappings_file) if model_mappings_file else None)
        self.include_usage = include_usage
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = asyncio.sleep

        logger.info(f"Loaded model mappings with {len(_flatten_mappings(self.model_mappings))} models")

    def resolve_model(self, model_name: str) -> str:
        """Resolve an alias to an OpenRouter model ID."""
        return resolve_model_id(model_name, self.model_mappings)

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.0,
        max_tokens: int = 1024,
        top_p: Optional[float] = None,
        response_format: Optional[Dict[str, Any]] = None,
        timeout_ms: int = 60000,
        max_attempts: int = 3,
    ) -> AgentResponse:
        """
        Issue one chat request, retrying retryable failures.

        Args:
            model: Model alias or OpenRouter model ID
            messages: Chat messages
            temperature: Sampling temperature
            max_tokens: Completion token limit
            top_p: Optional nucleus sampling parameter
            response_format: Structured-output format
            timeout_ms: Bound on each attempt in milliseconds
            max_attempts: Total attempts for retryable errors

        Returns:
            AgentResponse with content, usage and latency of the successful attempt

        Raises:
            OpenRouterError: Non-retryable error, or the last retryable one
        """
        model_id = self.resolve_model(model)
        timeout_s = timeout_ms / 1000

        async def _attempt() -> AgentResponse:
            with Timer() as timer:
                try:
                    response_data = await asyncio.wait_for(
                        asyncio.to_thread(
                            chat,
                            messages,
                            model_id,
                            temperature=temperature,
                            max_tokens=max_tokens,
                            top_p=top_p,
                            response_format=response_format,
                            include_usage=self.include_usage,
                            timeout=timeout_s,
                            api_key=self.api_key,
                        ),
                        timeout=timeout_s,
                    )
                except asyncio.TimeoutError as e:
                    raise OpenRouterTimeoutError(f"Request timed out after {timeout_ms}ms") from e
            return self._to_response(response_data, model_id, timer.elapsed_ms)

        return await retry_with_backoff(
            _attempt,
            should_retry=is_retryable_error,
            max_attempts=max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            sleep=self._sleep,
        )

    def _to_response(self, response_data: Dict, model_id: str, latency_ms: float) -> AgentResponse:
        """Convert a raw API response into an AgentResponse."""
        choice = response_data["choices"][0]
        message = choice.get("message") or {}
        content = message.get("content") or ""

        prompt_tokens, completion_tokens, total_tokens = extract_token_usage(response_data)
        cost, _ = extract_cost_info(response_data)

        usage = None
        if prompt_tokens is not None and completion_tokens is not None:
            usage = AgentUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=total_tokens if total_tokens is not None else prompt_tokens + completion_tokens,
                cost=float(cost) if cost is not None else None,
            )

        if not content.strip() and completion_tokens:
            logger.warning(
                f"[OpenRouter] Model generated {completion_tokens} tokens but content is empty "
                f"(finish_reason: {choice.get('finish_reason')})"
            )

        logger.debug(f"Model call completed. Model: {model_id}, Latency: {latency_ms:.1f}ms")

        return AgentResponse(
            content=content,
            usage=usage,
            latency_ms=latency_ms,
            model=response_data.get("model", model_id),
            finish_reason=choice.get("finish_reason"),
        )
