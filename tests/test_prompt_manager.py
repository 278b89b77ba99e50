"""Tests for prompt loading and the task bindings built on it."""

import pytest

from arena.config import CrosswordRuleSettings
from arena.tasks import ConnectionsTask, CrosswordTask, get_task
from shared.prompt_manager import PromptManager


class TestPromptManager:
    """Test cases for template hydration."""

    def test_placeholders_replaced(self, tmp_path):
        """Test that context keys fill upper-case placeholders."""
        (tmp_path / "p.md").write_text("You have {{MAX_MISTAKES}} mistakes. {{NAME}}!\n")
        manager = PromptManager(tmp_path)
        assert manager.load_prompt("p.md", {"max_mistakes": 4, "NAME": "Go"}) == "You have 4 mistakes. Go!"

    def test_missing_variable_becomes_empty(self, tmp_path):
        """Test that an unfilled placeholder is dropped."""
        (tmp_path / "p.md").write_text("A{{MISSING}}B")
        assert PromptManager(tmp_path).load_prompt("p.md") == "AB"

    def test_missing_template(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            PromptManager(tmp_path).load_template("nope.md")


class TestTaskPrompts:
    """Test cases for the bundled system prompts."""

    def test_connections_prompt(self):
        """Test that the Connections prompt is fully hydrated."""
        task = ConnectionsTask()
        assert "Connections" in task.system_prompt
        assert "{{" not in task.system_prompt

    def test_crossword_prompt_follows_check_rule(self):
        """Test that the check example only appears when checks are allowed."""
        with_checks = CrosswordTask(rules=CrosswordRuleSettings(allow_checks=True))
        without = CrosswordTask(rules=CrosswordRuleSettings(allow_checks=False))
        assert "check_entry" in with_checks.system_prompt
        assert "check_entry" not in without.system_prompt
        assert "{{" not in without.system_prompt

    def test_messages_carry_observation(self):
        """Test that the user turn holds the observation as JSON."""
        task = ConnectionsTask()
        messages = task.build_messages({"task": "connections", "mistakes_left": 4})
        assert [m["role"] for m in messages] == ["system", "user"]
        assert '"mistakes_left": 4' in messages[1]["content"]

    def test_get_task(self):
        """Test task lookup by puzzle type."""
        assert get_task("connections").name == "connections"
        assert get_task("crossword", CrosswordRuleSettings(allow_checks=False)).rules.allow_checks is False
        with pytest.raises(ValueError):
            get_task("sudoku")
