# src/goalcore/exceptions.py
"""
Custom exceptions for the goalcore library.

These are raised at internal seams (configuration loading, state stores,
classification backends, agent adapters).  The orchestration layer converts
everything except configuration errors into degraded-but-valid results, so
callers of ``Orchestrator.handle_turn`` never see them.
"""

class GoalCoreError(Exception):
    """Base class for all goalcore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in goalcore."):
        super().__init__(message)

class ConfigError(GoalCoreError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class StateStoreError(GoalCoreError):
    """Raised when a persistence collaborator fails to load or save a user state."""
    def __init__(self, user_id: str = "", message: str = "State store error."):
        self.user_id = user_id
        super().__init__(f"{message} User ID: '{user_id}'" if user_id else message)

class ClassificationError(GoalCoreError):
    """Raised when an external classification backend returns an unusable result."""
    def __init__(self, message: str = "Classification backend error."):
        super().__init__(message)

class AgentInvocationError(GoalCoreError):
    """Raised by agent adapters when content generation fails."""
    def __init__(self, agent_type: str = "unknown", message: str = "Agent invocation failed."):
        self.agent_type = agent_type
        super().__init__(f"Error with agent '{agent_type}': {message}")

class AgentTimeoutError(AgentInvocationError):
    """Raised when an agent does not answer within the configured timeout."""
    def __init__(self, agent_type: str = "unknown", timeout_seconds: float = 0.0):
        self.timeout_seconds = timeout_seconds
        super().__init__(agent_type, f"No reply within {timeout_seconds:.1f}s.")
