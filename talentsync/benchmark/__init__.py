"""Benchmark scoring."""

from talentsync.benchmark.engine import assign_tier, evaluate

__all__ = ["assign_tier", "evaluate"]
