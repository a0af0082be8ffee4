# src/goalcore/proactive/__init__.py
"""
Proactive actions: staleness sweeps and their periodic runner.
"""

from .engine import ProactiveActionEngine
from .scheduler import ActionSink, SweepScheduler, SweepStats

__all__ = [
    "ActionSink",
    "ProactiveActionEngine",
    "SweepScheduler",
    "SweepStats",
]
