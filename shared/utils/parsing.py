"""Helpers for turning model output into validated action objects."""

import logging
import re
from typing import Any, List, get_args

from pydantic import TypeAdapter, ValidationError

from ..errors import ActionParseError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


def strip_code_fence(content: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    text = content.strip()
    match = _CODE_FENCE.match(text)
    if match:
        return match.group(1)
    return text


def parse_action_json(content: str, adapter: TypeAdapter) -> Any:
    """
    Validate model output against an action union.

    Args:
        content: Raw message content from the model
        adapter: TypeAdapter wrapping the game's discriminated action union

    Returns:
        The validated action model

    Raises:
        ActionParseError: Empty content, invalid JSON, or a schema violation
    """
    text = strip_code_fence(content or "")
    if not text:
        raise ActionParseError("Empty response from model", raw=content or "")
    try:
        return adapter.validate_json(text)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", str(e))
        message = f"Invalid action: {location}: {detail}" if location else f"Invalid action: {detail}"
        logger.debug(f"Rejected model output: {text[:500]}")
        raise ActionParseError(message, raw=content) from e


def union_action_names(action_union: Any) -> List[str]:
    """List the ``action`` discriminator values of an ``Annotated[Union[...]]``.

    Used to build JSON schema enums so they always match the pydantic models.
    """
    union = get_args(action_union)[0]
    return [member.model_fields["action"].default for member in get_args(union)]
