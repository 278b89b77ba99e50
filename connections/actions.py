"""Action models and structured-output schema for the Connections game."""

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from shared.utils.parsing import parse_action_json, union_action_names


class SubmitGroupAction(BaseModel):
    """Guess that four remaining words form one group."""
    task: Literal["connections"] = "connections"
    action: Literal["submit_group"] = "submit_group"
    # Count is validated by the engine so a wrong count is an invalid action, not a parse error
    words: List[str] = Field(description="Exactly 4 words to submit as a group")


class GiveUpAction(BaseModel):
    """End the game early."""
    task: Literal["connections"] = "connections"
    action: Literal["give_up"] = "give_up"


ConnectionsAction = Annotated[
    Union[SubmitGroupAction, GiveUpAction],
    Field(discriminator="action"),
]

_adapter = TypeAdapter(ConnectionsAction)

ACTION_NAMES = union_action_names(ConnectionsAction)


def parse_action(content: str) -> Union[SubmitGroupAction, GiveUpAction]:
    """Parse a model response into a Connections action.

    Raises:
        ActionParseError: If the content is not a valid action
    """
    return parse_action_json(content, _adapter)


def build_action_schema() -> Dict[str, Any]:
    """JSON schema sent as the ``json_schema`` response format."""
    return {
        "name": "connections_action",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "task": {"type": "string", "enum": ["connections"]},
                "action": {"type": "string", "enum": list(ACTION_NAMES)},
                "words": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 4,
                    "maxItems": 4,
                    "description": "Required for submit_group action. Array of exactly 4 words to submit as a group.",
                },
            },
            "required": ["task", "action"],
            "additionalProperties": False,
        },
    }


CONNECTIONS_ACTION_SCHEMA = build_action_schema()
