# src/goalcore/config/__init__.py
"""
Configuration for goalcore.

Settings are pydantic models with validated defaults.  ``load_config``
layers an optional TOML file and ``GOALCORE_*`` environment variables
(double underscores for nesting, e.g. ``GOALCORE_PROACTIVE__ENABLED=false``)
on top of the defaults.
"""

from .models import (
    ClassifierConfig,
    GoalCoreConfig,
    GoalStateConfig,
    LoggingConfig,
    OrchestratorConfig,
    ProactiveConfig,
    RouterConfig,
    load_config,
)

__all__ = [
    "ClassifierConfig",
    "GoalCoreConfig",
    "GoalStateConfig",
    "LoggingConfig",
    "OrchestratorConfig",
    "ProactiveConfig",
    "RouterConfig",
    "load_config",
]
