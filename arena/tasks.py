"""Bindings from a puzzle type to its engine, action parser, schema and prompt."""

import json
import random
from typing import Any, Dict, List, Optional

from connections import actions as connections_actions
from connections.game_engine import ConnectionsEngine
from crossword import actions as crossword_actions
from crossword.game_engine import CrosswordEngine, CrosswordRules
from shared.prompt_manager import PromptManager

from .config import CrosswordRuleSettings


class GameTask:
    """Everything the step loop needs to play one puzzle type."""

    name = ""
    engine: Any = None
    prompt_file = ""

    def __init__(self, prompt_manager: Optional[PromptManager] = None):
        self.prompt_manager = prompt_manager or PromptManager()
        self.system_prompt = self.prompt_manager.load_prompt(self.prompt_file, self.prompt_context())

    def prompt_context(self) -> Dict[str, Any]:
        return {}

    @property
    def response_schema(self) -> Dict[str, Any]:
        raise NotImplementedError

    @property
    def response_format(self) -> Dict[str, Any]:
        return {"type": "json_schema", "json_schema": self.response_schema}

    def reset(self, puzzle: Any) -> Any:
        raise NotImplementedError

    def parse_action(self, content: str) -> Any:
        raise NotImplementedError

    def build_messages(self, observation: Dict[str, Any]) -> List[Dict[str, str]]:
        """System prompt plus the current observation as the user turn."""
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": f"Current game state:\n\n{json.dumps(observation, indent=2)}"},
        ]


class ConnectionsTask(GameTask):
    name = "connections"
    engine = ConnectionsEngine
    prompt_file = "connections/prompts/system.md"

    def __init__(self, prompt_manager: Optional[PromptManager] = None, rng: Optional[random.Random] = None):
        self.rng = rng
        super().__init__(prompt_manager)

    def prompt_context(self) -> Dict[str, Any]:
        return {"max_mistakes": ConnectionsEngine.MAX_MISTAKES}

    @property
    def response_schema(self) -> Dict[str, Any]:
        return connections_actions.CONNECTIONS_ACTION_SCHEMA

    def reset(self, puzzle: Any) -> Any:
        return ConnectionsEngine.reset(puzzle, rng=self.rng)

    def parse_action(self, content: str) -> Any:
        return connections_actions.parse_action(content)


class CrosswordTask(GameTask):
    name = "crossword"
    engine = CrosswordEngine
    prompt_file = "crossword/prompts/system.md"

    def __init__(self, prompt_manager: Optional[PromptManager] = None, rules: Optional[CrosswordRuleSettings] = None):
        settings = rules or CrosswordRuleSettings()
        self.rules = CrosswordRules(allow_checks=settings.allow_checks, allow_reveals=settings.allow_reveals)
        super().__init__(prompt_manager)

    def prompt_context(self) -> Dict[str, Any]:
        if self.rules.allow_checks:
            return {
                "check_rules": "Use check_entry to find wrong cells in a fully filled entry before submitting. "
                "Checks never reveal the correct letters.",
                "check_example": '- Check entry: {"task":"crossword","action":"check_entry","direction":"across","number":1}\n',
            }
        return {
            "check_rules": "There is no way to check entries - only submit when confident.",
            "check_example": "",
        }

    @property
    def response_schema(self) -> Dict[str, Any]:
        return crossword_actions.build_action_schema(self.rules.allow_checks)

    def reset(self, puzzle: Any) -> Any:
        return CrosswordEngine.reset(puzzle, self.rules)

    def parse_action(self, content: str) -> Any:
        return crossword_actions.parse_action(content)


def get_task(
    task: str,
    crossword_rules: Optional[CrosswordRuleSettings] = None,
    prompt_manager: Optional[PromptManager] = None,
) -> GameTask:
    """Build the task binding for a puzzle type."""
    if task == "connections":
        return ConnectionsTask(prompt_manager)
    if task == "crossword":
        return CrosswordTask(prompt_manager, crossword_rules)
    raise ValueError(f"Unknown task: {task!r}")
