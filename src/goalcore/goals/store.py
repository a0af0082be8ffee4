# src/goalcore/goals/store.py
"""
Persistence collaborators for per-user goal state.

The core works with a purely in-memory registry; a store only adds
durability across restarts.  Any object implementing :class:`StateStore`
can be plugged into the registry.  :class:`JsonFileStateStore` keeps one
JSON document per user in a directory, using aiofiles for asynchronous
file operations and write-to-temp-then-rename for atomic updates.
"""

import hashlib
import json
import logging
import os
import re
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import aiofiles
import aiofiles.os as aios

from ..exceptions import StateStoreError
from .models import UserGoalState

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@runtime_checkable
class StateStore(Protocol):
    """Load/save interface for user goal state."""

    async def load_state(self, user_id: str) -> Optional[UserGoalState]:
        """Return the stored state, or None if the user has none."""
        ...

    async def save_state(self, user_id: str, state: UserGoalState) -> None:
        """Persist ``state`` for ``user_id``, replacing any previous copy."""
        ...


class JsonFileStateStore:
    """
    Stores each user's goal state as a JSON file in ``directory``.

    File names are derived from the user id (unsafe characters replaced,
    plus a short hash so distinct ids never collide).

    Args:
        directory: Storage directory; created on first save.
        history_size: Capacity applied to the history of loaded states.
    """

    def __init__(
        self,
        directory: str = "~/.local/share/goalcore/states",
        history_size: Optional[int] = None,
    ) -> None:
        self._dir = Path(os.path.expanduser(os.path.expandvars(directory)))
        self._history_size = history_size

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, user_id: str) -> Path:
        digest = hashlib.sha1(user_id.encode("utf-8")).hexdigest()[:12]
        safe = _UNSAFE_CHARS.sub("_", user_id)[:64]
        return self._dir / f"{safe}-{digest}.json"

    async def load_state(self, user_id: str) -> Optional[UserGoalState]:
        path = self._path_for(user_id)
        if not await aios.path.exists(path):
            return None
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content)
            state = UserGoalState.from_dict(data, history_size=self._history_size)
        except json.JSONDecodeError as e:
            logger.error("Corrupted state file for user '%s' at %s: %s", user_id, path, e)
            raise StateStoreError(user_id, f"Corrupted state file: {e}") from e
        except (KeyError, ValueError, TypeError) as e:
            logger.error("Invalid state document for user '%s' at %s: %s", user_id, path, e)
            raise StateStoreError(user_id, f"Invalid state document: {e}") from e
        except OSError as e:
            raise StateStoreError(user_id, f"Failed to read state file: {e}") from e

        if state.user_id != user_id:
            raise StateStoreError(user_id, f"State file belongs to '{state.user_id}'")
        logger.debug("Loaded state for user '%s' from %s", user_id, path)
        return state

    async def save_state(self, user_id: str, state: UserGoalState) -> None:
        path = self._path_for(user_id)
        tmp_path = path.with_suffix(".tmp")
        try:
            await aios.makedirs(self._dir, exist_ok=True)
            payload = json.dumps(state.to_dict(), indent=2)
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(payload)
            await aios.replace(tmp_path, path)
        except (OSError, TypeError) as e:
            logger.error("Failed to save state for user '%s' to %s: %s", user_id, path, e)
            raise StateStoreError(user_id, f"Failed to write state file: {e}") from e
        logger.debug("Saved state for user '%s' to %s", user_id, path)
