"""Token usage and cost extraction utilities."""

from typing import Optional, Tuple


def extract_token_usage(response_data: dict) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """
    Extract token usage from API response.

    Args:
        response_data: Raw API response data

    Returns:
        Tuple of (prompt_tokens, completion_tokens, total_tokens).
        Entries are None when the API did not report them. A missing
        total is derived from prompt + completion when both are present.
    """
    usage = response_data.get("usage") or {}

    prompt_tokens = usage.get("prompt_tokens")
    completion_tokens = usage.get("completion_tokens")
    total_tokens = usage.get("total_tokens")

    if total_tokens is None and prompt_tokens is not None and completion_tokens is not None:
        total_tokens = prompt_tokens + completion_tokens

    return prompt_tokens, completion_tokens, total_tokens


def extract_cost_info(response_data: dict) -> Tuple[Optional[float], Optional[float]]:
    """
    Extract cost information from API response.

    Args:
        response_data: Raw API response data

    Returns:
        Tuple of (total_cost, upstream_cost)
        Costs are in credits/USD or None if not available
    """
    usage = response_data.get("usage") or {}

    # Total cost charged by OpenRouter
    total_cost = usage.get("cost")

    # Upstream cost (for BYOK requests)
    cost_details = usage.get("cost_details", {})
    upstream_cost = cost_details.get("upstream_inference_cost") if cost_details else None

    return total_cost, upstream_cost
