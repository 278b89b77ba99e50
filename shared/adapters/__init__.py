"""Adapters for model-hosting APIs."""

from .openrouter_adapter import (
    AgentResponse,
    AgentUsage,
    OpenRouterAdapter,
    OpenRouterError,
    OpenRouterTimeoutError,
    is_retryable_error,
)

__all__ = [
    "AgentResponse",
    "AgentUsage",
    "OpenRouterAdapter",
    "OpenRouterError",
    "OpenRouterTimeoutError",
    "is_retryable_error",
]
