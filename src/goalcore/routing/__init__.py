# src/goalcore/routing/__init__.py
"""
Message classification and agent routing.

Components:
    - MessageClassifier: keyword/pattern classification with optional backend
    - AgentRouter: picks the agent for a turn from classification and goals
"""

from .classifier import ClassificationBackend, MessageClassifier
from .router import AgentRouter

__all__ = [
    "AgentRouter",
    "ClassificationBackend",
    "MessageClassifier",
]
