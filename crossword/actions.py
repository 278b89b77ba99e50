"""Action models and structured-output schemas for the Crossword game."""

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from shared.utils.parsing import parse_action_json, union_action_names

Direction = Literal["across", "down"]


class FillEntryAction(BaseModel):
    """Write an answer into every cell of one entry."""
    task: Literal["crossword"] = "crossword"
    action: Literal["fill_entry"] = "fill_entry"
    direction: Direction
    number: int
    answer: str


class ClearEntryAction(BaseModel):
    task: Literal["crossword"] = "crossword"
    action: Literal["clear_entry"] = "clear_entry"
    direction: Direction
    number: int


class CheckEntryAction(BaseModel):
    """Ask which cells of a fully filled entry are wrong."""
    task: Literal["crossword"] = "crossword"
    action: Literal["check_entry"] = "check_entry"
    direction: Direction
    number: int


class SubmitPuzzleAction(BaseModel):
    task: Literal["crossword"] = "crossword"
    action: Literal["submit_puzzle"] = "submit_puzzle"


class GiveUpAction(BaseModel):
    task: Literal["crossword"] = "crossword"
    action: Literal["give_up"] = "give_up"


CrosswordAction = Annotated[
    Union[FillEntryAction, ClearEntryAction, CheckEntryAction, SubmitPuzzleAction, GiveUpAction],
    Field(discriminator="action"),
]

_adapter = TypeAdapter(CrosswordAction)

ACTION_NAMES = union_action_names(CrosswordAction)
ENTRY_ACTIONS = ("fill_entry", "clear_entry", "check_entry")


def allowed_action_names(allow_checks: bool = True) -> List[str]:
    """Action names legal under the given rules."""
    return [name for name in ACTION_NAMES if allow_checks or name != "check_entry"]


def parse_action(content: str) -> Any:
    """Parse a model response into a Crossword action.

    ``check_entry`` parses even when checks are disabled; the engine rejects
    it as an invalid action.

    Raises:
        ActionParseError: If the content is not a valid action
    """
    return parse_action_json(content, _adapter)


def build_action_schema(allow_checks: bool = True) -> Dict[str, Any]:
    """JSON schema sent as the ``json_schema`` response format.

    With checks disabled ``check_entry`` is left out of the action enum.
    """
    actions = allowed_action_names(allow_checks)
    entry_actions = ", ".join(a for a in ENTRY_ACTIONS if a in actions)
    return {
        "name": "crossword_action",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "task": {"type": "string", "enum": ["crossword"]},
                "action": {"type": "string", "enum": actions},
                "direction": {
                    "type": "string",
                    "enum": ["across", "down"],
                    "description": f"Required for {entry_actions}.",
                },
                "number": {
                    "type": "number",
                    "description": f"The clue number. Required for {entry_actions}.",
                },
                "answer": {
                    "type": "string",
                    "description": "The answer to fill in (uppercase letters only). Required for fill_entry.",
                },
            },
            "required": ["task", "action"],
            "additionalProperties": False,
        },
    }


CROSSWORD_ACTION_SCHEMA = build_action_schema(allow_checks=True)
CROSSWORD_ACTION_NO_CHECK_SCHEMA = build_action_schema(allow_checks=False)
