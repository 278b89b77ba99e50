"""Tests for suite configuration loading."""

import pytest

from arena.config import ConfigError, SuiteConfig

MINIMAL = {
    "name": "smoke",
    "models": ["gemini-flash"],
    "puzzles": {"type": "connections"},
}


def with_changes(**changes):
    data = dict(MINIMAL)
    data.update(changes)
    return data


class TestSuiteConfig:
    """Test cases for SuiteConfig.from_dict and from_yaml."""

    def test_defaults(self):
        """Test that a minimal suite gets the documented defaults."""
        config = SuiteConfig.from_dict(MINIMAL)
        assert config.task == "connections"
        assert config.repeats == 1
        assert config.max_steps == 50
        assert config.run_timeout_ms == 300_000
        assert config.step_timeout_ms == 60_000
        assert config.max_invalid_actions == 5
        assert config.max_attempts == 3
        assert config.steps_compression == "auto"
        assert config.openrouter.temperature == 0.0
        assert config.openrouter.max_tokens == 1024
        assert config.crossword_rules.allow_checks is True

    def test_full_suite(self):
        """Test that every section is read."""
        config = SuiteConfig.from_dict(with_changes(
            models=["gpt-4o-mini", "openai/gpt-4o"],
            puzzles={"type": "crossword", "ids": [101, "xword-mini-1"], "limit": 2, "shuffle": True, "seed": 7},
            repeats=3,
            openrouter={"temperature": 0.7, "top_p": 0.9, "include_usage": False},
            crossword_rules={"allow_checks": False},
            steps_compression="always",
        ))
        assert config.task == "crossword"
        assert config.puzzles.ids == ("101", "xword-mini-1")
        assert config.puzzles.seed == 7
        assert config.repeats == 3
        assert config.openrouter.top_p == 0.9
        assert config.openrouter.include_usage is False
        assert config.crossword_rules.allow_checks is False

    def test_loaded_config_cannot_be_changed(self):
        """Test that model and puzzle id lists are stored immutably."""
        config = SuiteConfig.from_dict(with_changes(puzzles={"type": "connections", "ids": ["a", "b"]}))
        assert config.models == ("gemini-flash",)
        assert isinstance(config.puzzles.ids, tuple)
        with pytest.raises(AttributeError):
            config.models.append("gpt-4o")

    def test_yaml_dates_become_strings(self):
        """Test that YAML date objects are normalized to ISO strings."""
        import datetime
        config = SuiteConfig.from_dict(with_changes(
            puzzles={"type": "connections", "date_start": datetime.date(2023, 6, 1), "date_end": "2023-06-30"}
        ))
        assert config.puzzles.date_start == "2023-06-01"
        assert config.puzzles.date_end == "2023-06-30"

    @pytest.mark.parametrize("changes,field", [
        ({"name": ""}, "name"),
        ({"models": []}, "models"),
        ({"models": ["a", "a"]}, "models"),
        ({"puzzles": {"type": "sudoku"}}, "puzzles.type"),
        ({"puzzles": None}, "puzzles"),
        ({"max_steps": 0}, "max_steps"),
        ({"repeats": "two"}, "repeats"),
        ({"max_invalid_actions": True}, "max_invalid_actions"),
        ({"openrouter": {"temperature": -1}}, "openrouter.temperature"),
        ({"openrouter": {"top_p": 1.5}}, "openrouter.top_p"),
        ({"crossword_rules": {"allow_checks": "yes"}}, "crossword_rules.allow_checks"),
        ({"steps_compression": "zip"}, "steps_compression"),
    ])
    def test_invalid_values_name_the_field(self, changes, field):
        """Test that validation errors say which field is wrong."""
        with pytest.raises(ConfigError, match=field.replace(".", r"\.")):
            SuiteConfig.from_dict(with_changes(**changes))

    def test_from_yaml(self, tmp_path):
        """Test loading a suite file from disk."""
        path = tmp_path / "suite.yml"
        path.write_text(
            "name: from-file\n"
            "models: [gemini-flash]\n"
            "puzzles:\n"
            "  type: connections\n"
            "  date_start: 2023-06-01\n"
            "max_steps: 20\n"
        )
        config = SuiteConfig.from_yaml(path)
        assert config.name == "from-file"
        assert config.max_steps == 20
        assert config.puzzles.date_start == "2023-06-01"

    def test_missing_file(self, tmp_path):
        """Test that a missing suite file is a ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            SuiteConfig.from_yaml(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path):
        """Test that unparseable YAML is a ConfigError."""
        path = tmp_path / "bad.yml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            SuiteConfig.from_yaml(path)
