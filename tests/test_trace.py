"""Tests for per-run trace persistence."""

import gzip
import json

from arena.trace import (
    STEPS_FILE,
    STEPS_GZ_FILE,
    SUMMARY_FILE,
    RunSummary,
    StepRecord,
    TraceWriter,
    read_steps,
    read_summary,
)


def make_step(index):
    return StepRecord(
        step_index=index,
        observation={"state_version": index},
        request={"model": "model-a"},
        response={"raw": "{}", "parsed": None},
        latency_ms=10.0,
    )


def make_summary(status="success"):
    return RunSummary(
        run_id="abc123",
        suite_name="suite",
        started_at="2024-01-01T00:00:00+00:00",
        ended_at="2024-01-01T00:01:00+00:00",
        model_id="model-a",
        puzzle_id="p1",
        task="connections",
        status=status,
        steps_taken=2,
        invalid_actions=0,
        metrics={"mistakes_made": 0, "groups_found": 4},
    )


class TestTraceWriter:
    """Test cases for writing steps and summaries."""

    def test_steps_are_flushed_per_append(self, tmp_path):
        """Test that each step is on disk as soon as it is appended."""
        writer = TraceWriter(tmp_path / "run", compression="never")
        writer.append(make_step(0))

        lines = (tmp_path / "run" / STEPS_FILE).read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["step_index"] == 0
        assert writer.steps_written == 1
        writer.close()

    def test_plain_round_trip(self, tmp_path):
        """Test reading back uncompressed steps and the summary."""
        run_dir = tmp_path / "run"
        writer = TraceWriter(run_dir, compression="never")
        writer.append(make_step(0))
        writer.append(make_step(1))
        steps_path = writer.finalize(make_summary())

        assert steps_path == run_dir / STEPS_FILE
        assert read_steps(run_dir) == [make_step(0), make_step(1)]
        assert read_summary(run_dir) == make_summary()

    def test_always_compresses(self, tmp_path):
        """Test that the steps file is replaced by a gzip file."""
        run_dir = tmp_path / "run"
        writer = TraceWriter(run_dir, compression="always")
        writer.append(make_step(0))
        steps_path = writer.finalize(make_summary())

        assert steps_path == run_dir / STEPS_GZ_FILE
        assert not (run_dir / STEPS_FILE).exists()
        with gzip.open(steps_path, "rt") as f:
            assert json.loads(f.readline())["step_index"] == 0
        assert read_steps(run_dir) == [make_step(0)]

    def test_auto_compresses_above_threshold(self, tmp_path):
        """Test that auto compresses only large step files."""
        small = TraceWriter(tmp_path / "small", compression="auto", threshold_bytes=1_000_000)
        small.append(make_step(0))
        assert small.finalize(make_summary()).name == STEPS_FILE

        large = TraceWriter(tmp_path / "large", compression="auto", threshold_bytes=10)
        large.append(make_step(0))
        assert large.finalize(make_summary()).name == STEPS_GZ_FILE

    def test_summary_leaves_no_temp_file(self, tmp_path):
        """Test that the atomic summary write cleans up after itself."""
        run_dir = tmp_path / "run"
        writer = TraceWriter(run_dir, compression="always")
        writer.finalize(make_summary("timeout"))

        names = sorted(p.name for p in run_dir.iterdir())
        assert names == [STEPS_GZ_FILE, SUMMARY_FILE]
        assert json.loads((run_dir / SUMMARY_FILE).read_text())["status"] == "timeout"

    def test_unknown_fields_are_ignored(self):
        """Test that extra keys in older or newer traces do not break reading."""
        data = dict(make_step(3).to_dict(), extra_field="ignored")
        assert StepRecord.from_dict(data) == make_step(3)
