"""Tests for run events and event sinks."""

import json

import pytest

from arena.events import EventLog, RunEvent, fan_out


class TestRunEvent:
    """Test cases for RunEvent."""

    def test_to_dict_omits_unset_fields(self):
        """Test that only fields relevant to the event are serialized."""
        event = RunEvent(type="step_start", model_id="m", puzzle_id="p", run_id="r", step_index=0)
        data = event.to_dict()
        assert data["type"] == "step_start"
        assert data["step_index"] == 0
        assert "timestamp" in data
        assert "status" not in data
        assert "cost" not in data

    def test_unknown_type_rejected(self):
        """Test that event types are validated."""
        with pytest.raises(ValueError):
            RunEvent(type="progress", model_id="m")


class TestSinks:
    """Test cases for fan_out and EventLog."""

    def test_fan_out_calls_each_sink(self):
        """Test that every sink sees every event, skipping None."""
        first, second = [], []
        emit = fan_out(first.append, None, second.append)
        event = RunEvent(type="worker_idle", model_id="m")
        emit(event)
        assert first == [event]
        assert second == [event]

    def test_event_log_writes_json_lines(self, tmp_path):
        """Test that each event becomes one flushed JSON line."""
        path = tmp_path / "suite" / "events.jsonl"
        with EventLog(path) as log:
            log(RunEvent(type="run_start", model_id="m", puzzle_id="p", run_id="r"))
            assert len(path.read_text().splitlines()) == 1
            log(RunEvent(type="run_complete", model_id="m", status="success", total_steps=4))

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [e["type"] for e in lines] == ["run_start", "run_complete"]
        assert lines[1]["status"] == "success"
