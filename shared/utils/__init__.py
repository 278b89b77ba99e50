"""Shared utilities for Puzzle Arena."""

from .logging import JSONFormatter, setup_logging
from .parsing import parse_action_json, strip_code_fence, union_action_names
from .retry import compute_backoff_delay, retry_with_backoff
from .timing import Timer
from .tokens import extract_cost_info, extract_token_usage

__all__ = [
    "compute_backoff_delay",
    "retry_with_backoff",
    "Timer",
    "extract_token_usage",
    "extract_cost_info",
    "JSONFormatter",
    "setup_logging",
    "parse_action_json",
    "strip_code_fence",
    "union_action_names",
]
