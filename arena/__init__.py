"""Puzzle Arena run engine: suites, workers, step loop and traces."""

__version__ = "0.1.0"
