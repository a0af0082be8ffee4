# src/goalcore/config/models.py
"""
Configuration models for goalcore.

Every policy constant used by the classifier, goal state manager, router,
proactive engine and orchestrator is a validated, tunable field here.

The configuration hierarchy:
    GoalCoreConfig (root)
    ├── ClassifierConfig     - keyword classifier and backend fallback
    ├── GoalStateConfig      - satisfaction arithmetic, priorities, history
    ├── RouterConfig         - confidence cutoff for trusting the classifier
    ├── ProactiveConfig      - staleness windows, check-ins, sweep interval
    ├── OrchestratorConfig   - agent timeout and fallback content
    └── LoggingConfig        - console/file logging

Usage:
    >>> from goalcore.config.models import GoalCoreConfig
    >>> config = GoalCoreConfig()  # All defaults
    >>> config.goals.resolution_threshold
    80.0

    >>> config = load_config("goalcore.toml")  # file + GOALCORE_* env vars

Environment variables:
    - Prefix: GOALCORE_
    - Nested keys use double underscores: GOALCORE_ROUTER__CONFIDENCE_THRESHOLD=0.7
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..exceptions import ConfigError
from ..goals.models import DEFAULT_PRIORITIES, GoalType

logger = logging.getLogger(__name__)

ENV_PREFIX = "GOALCORE_"


# =============================================================================
# CLASSIFIER CONFIGURATION
# =============================================================================


class ClassifierConfig(BaseModel):
    """
    Configuration for the message classifier.

    Examples:
        >>> ClassifierConfig().llm_confidence_threshold
        0.7
    """

    llm_fallback_enabled: bool = Field(
        default=False,
        description="Consult the external classification backend for low-confidence messages",
    )
    llm_confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Heuristic confidence below which the backend is consulted",
    )
    terse_message_chars: int = Field(
        default=10,
        ge=0,
        description="Messages shorter than this fire the 'terse' signal",
    )
    engaged_message_chars: int = Field(
        default=50,
        ge=1,
        description="Messages at least this long fire the 'question' signal even without '?'",
    )


# =============================================================================
# GOAL STATE CONFIGURATION
# =============================================================================


class GoalStateConfig(BaseModel):
    """
    Satisfaction arithmetic for the GoalStateManager.

    All scores live on a 0-100 scale.

    Examples:
        >>> config = GoalStateConfig()
        >>> config.neutral_satisfaction
        50.0
        >>> config.priorities[GoalType.TECHNICAL_HELP]
        10.0
    """

    neutral_satisfaction: float = Field(
        default=50.0, ge=0.0, le=100.0, description="Initial satisfaction of every goal"
    )
    resolution_threshold: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Satisfaction at or above which an active goal is considered resolved",
    )
    success_gain: float = Field(
        default=25.0, ge=0.0, le=100.0, description="Gain when an agent helped the dominant goal"
    )
    resolution_gain: float = Field(
        default=60.0,
        ge=0.0,
        le=100.0,
        description="Gain when the agent reports it resolved the dominant goal",
    )
    failure_penalty: float = Field(
        default=10.0, ge=0.0, le=100.0, description="Loss on the dominant goal when a turn fails"
    )
    frustration_penalty: float = Field(
        default=15.0,
        ge=0.0,
        le=100.0,
        description="Loss on every active goal when the user sounds frustrated",
    )
    active_weight: float = Field(
        default=2.0, gt=0.0, description="Aggregate weight of active goals"
    )
    inactive_weight: float = Field(
        default=1.0, gt=0.0, description="Aggregate weight of inactive goals"
    )
    interaction_step: float = Field(
        default=10.0, ge=0.0, le=100.0, description="Interaction score change per message cue"
    )
    engagement_interaction_share: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Share of engagement_level taken from the interaction score",
    )
    history_size: int = Field(
        default=20, ge=1, le=1000, description="Turns kept in each user's history"
    )
    priorities: Dict[GoalType, float] = Field(
        default_factory=lambda: dict(DEFAULT_PRIORITIES),
        description="Per-goal priority used for urgency ranking",
    )

    @field_validator("priorities")
    @classmethod
    def fill_priorities(cls, v: Dict[GoalType, float]) -> Dict[GoalType, float]:
        """Fill goal types missing from an override with their defaults."""
        merged = dict(DEFAULT_PRIORITIES)
        merged.update(v)
        for goal_type, value in merged.items():
            if value <= 0:
                raise ValueError(f"priority for {goal_type.value} must be positive")
        return merged


# =============================================================================
# ROUTER CONFIGURATION
# =============================================================================


class RouterConfig(BaseModel):
    """
    Configuration for the AgentRouter.

    Examples:
        >>> RouterConfig().confidence_threshold
        0.6
    """

    confidence_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Classifier confidence above which its agent type is used directly",
    )


# =============================================================================
# PROACTIVE CONFIGURATION
# =============================================================================


class ProactiveConfig(BaseModel):
    """
    Configuration for the proactive action engine and its periodic runner.

    Examples:
        >>> config = ProactiveConfig()
        >>> config.staleness_seconds[GoalType.WAITING_SUPPORT]
        120.0
    """

    enabled: bool = Field(default=True, description="Enable proactive actions")
    sweep_interval_seconds: float = Field(
        default=30.0, ge=0.01, le=3600.0, description="Interval between periodic sweeps"
    )
    staleness_seconds: Dict[GoalType, float] = Field(
        default_factory=lambda: {
            GoalType.WAITING_SUPPORT: 120.0,
            GoalType.ENTERTAINMENT: 60.0,
            GoalType.TECHNICAL_HELP: 300.0,
            GoalType.GENERAL_ENGAGEMENT: 180.0,
        },
        description="Seconds an active, unmet goal may go untouched before a proactive action",
    )
    check_in_after_seconds: Optional[float] = Field(
        default=900.0,
        ge=0.0,
        description=(
            "Idle time after which waiting/frustrated users with no eligible goal get a "
            "check-in. None disables check-ins."
        ),
    )
    max_consecutive_errors: int = Field(
        default=5, ge=1, le=100, description="Sweep failures before the runner stops sweeping"
    )

    @field_validator("staleness_seconds")
    @classmethod
    def fill_staleness(cls, v: Dict[GoalType, float]) -> Dict[GoalType, float]:
        merged = {
            GoalType.WAITING_SUPPORT: 120.0,
            GoalType.ENTERTAINMENT: 60.0,
            GoalType.TECHNICAL_HELP: 300.0,
            GoalType.GENERAL_ENGAGEMENT: 180.0,
        }
        merged.update(v)
        for goal_type, value in merged.items():
            if value < 0:
                raise ValueError(f"staleness for {goal_type.value} must be >= 0")
        return merged


# =============================================================================
# ORCHESTRATOR CONFIGURATION
# =============================================================================


class OrchestratorConfig(BaseModel):
    """Configuration for the orchestration facade."""

    agent_timeout_seconds: float = Field(
        default=20.0, gt=0.0, le=600.0, description="Upper bound on one agent invocation"
    )
    fallback_content: str = Field(
        default=(
            "Sorry, I'm having trouble answering right now. "
            "I'm still here and will keep trying to help."
        ),
        min_length=1,
        description="Content returned when the agent fails or times out",
    )
    sweep_after_turn: bool = Field(
        default=True, description="Run a sweep scoped to the user after each turn"
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


class LoggingConfig(BaseModel):
    """Console and file logging settings consumed by ``configure_logging``."""

    console_enabled: bool = False
    console_level: str = "WARNING"
    console_format: str = "%(levelname)s - %(message)s"
    display_min_level: str = "INFO"
    file_enabled: bool = False
    file_level: str = "DEBUG"
    file_directory: str = "~/.local/share/goalcore/logs"
    file_mode: str = Field(default="per_run", pattern="^(per_run|single)$")
    file_name_pattern: str = "{app}_{timestamp:%Y%m%d_%H%M%S}.log"
    file_single_name: str = "{app}.log"
    file_format: str = (
        "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)"
    )
    rotation_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    rotation_backup_count: int = Field(default=5, ge=0)
    components: Dict[str, str] = Field(
        default_factory=lambda: {"goalcore": "INFO", "asyncio": "WARNING"}
    )

    @field_validator("console_level", "display_min_level", "file_level")
    @classmethod
    def check_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("file_directory")
    @classmethod
    def expand_directory(cls, v: str) -> str:
        """Expand ~ and environment variables in file_directory."""
        return os.path.expanduser(os.path.expandvars(v))


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class GoalCoreConfig(BaseModel):
    """Root configuration aggregating every section."""

    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    goals: GoalStateConfig = Field(default_factory=GoalStateConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    proactive: ProactiveConfig = Field(default_factory=ProactiveConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def check_cross_section(self) -> "GoalCoreConfig":
        if self.goals.resolution_threshold <= self.goals.neutral_satisfaction:
            raise ValueError(
                "goals.resolution_threshold must be above goals.neutral_satisfaction, "
                "otherwise fresh goals would count as resolved"
            )
        return self


# =============================================================================
# LOADING
# =============================================================================


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    """Turn GOALCORE_SECTION__KEY=value variables into a nested dict."""
    overrides: Dict[str, Any] = {}
    for key, raw in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = [p.lower() for p in key[len(ENV_PREFIX):].split("__") if p]
        if not path:
            continue
        try:
            value: Any = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise ConfigError(f"Environment variable {key} conflicts with another override")
        node[path[-1]] = value
    return overrides


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path | None = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> GoalCoreConfig:
    """
    Load configuration from an optional TOML file, environment and overrides.

    Precedence (lowest to highest): defaults, TOML file, ``GOALCORE_*``
    environment variables, explicit ``overrides``.

    Args:
        path: Optional TOML file.  A missing file is an error.
        env: Environment mapping (defaults to ``os.environ``).
        overrides: Nested dict applied last.

    Returns:
        Validated :class:`GoalCoreConfig`.

    Raises:
        ConfigError: If the file cannot be read or a value fails validation.
    """
    data: Dict[str, Any] = {}
    if path is not None:
        file_path = Path(os.path.expanduser(str(path)))
        try:
            with file_path.open("rb") as fh:
                data = tomllib.load(fh)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {file_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {file_path}: {exc}") from exc
        logger.debug("Loaded configuration file %s", file_path)

    data = _deep_merge(data, _env_overrides(os.environ if env is None else env))
    if overrides:
        data = _deep_merge(data, overrides)

    try:
        return GoalCoreConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid goalcore configuration: {exc}") from exc
