# src/goalcore/goals/registry.py
"""
Concurrency-safe keyed registry of per-user goal state.

Each user gets a slot holding:

- an ``asyncio.Lock`` that serializes mutations of that user's state,
- the live :class:`UserGoalState` (loaded lazily from the optional store),
- a turn sequencer so turns accepted in order are applied in order even
  when their agent calls complete out of order.

There is no registry-wide lock.  Slot creation is a synchronous dict
insert, which cannot interleave with another coroutine, and state
creation happens under the slot's own lock, so two concurrent first turns
for the same user always end up with the same state object.

Readers (sweeps, ``get_state``) take deep-copy snapshots without locking.
Mutations never await in the middle of changing a state, so a snapshot
always sees a state between two complete updates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from .models import UserGoalState
from .store import StateStore

logger = logging.getLogger(__name__)


class _UserSlot:
    """Lock, live state and turn sequencing for one user."""

    __slots__ = ("lock", "state", "next_ticket", "next_to_apply", "finished", "turn_done")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.state: Optional[UserGoalState] = None
        self.next_ticket = 0
        self.next_to_apply = 0
        self.finished: Set[int] = set()
        self.turn_done = asyncio.Condition()


class UserStateRegistry:
    """
    Owns every live UserGoalState.

    Args:
        factory: Builds a fresh state for a user id.
        store: Optional persistence collaborator.  Load failures are logged
            and treated as "no stored state"; save failures are logged.
    """

    def __init__(
        self,
        factory: Callable[[str], UserGoalState],
        store: Optional[StateStore] = None,
    ) -> None:
        self._factory = factory
        self._store = store
        self._slots: Dict[str, _UserSlot] = {}

    @property
    def store(self) -> Optional[StateStore]:
        return self._store

    def _slot(self, user_id: str) -> _UserSlot:
        slot = self._slots.get(user_id)
        if slot is None:
            slot = self._slots.setdefault(user_id, _UserSlot())
        return slot

    async def _ensure_state(
        self, user_id: str, slot: _UserSlot
    ) -> Tuple[UserGoalState, bool]:
        """Load or create the slot's state.  Caller holds ``slot.lock``.

        Returns:
            The live state, and True if it was newly created.
        """
        if slot.state is not None:
            return slot.state, False

        if self._store is not None:
            try:
                loaded = await self._store.load_state(user_id)
            except Exception as e:
                logger.warning(
                    "Could not load stored state for user '%s', starting fresh: %s", user_id, e
                )
                loaded = None
            if loaded is not None:
                slot.state = loaded
                logger.debug("Restored goal state for user '%s' from store", user_id)
                return loaded, False

        slot.state = self._factory(user_id)
        logger.debug("Created goal state for user '%s'", user_id)
        return slot.state, True

    async def get_or_create(self, user_id: str) -> UserGoalState:
        """Insert-if-absent.  Returns a snapshot of the (possibly new) state."""
        slot = self._slot(user_id)
        async with slot.lock:
            state, created = await self._ensure_state(user_id, slot)
            if created:
                await self._save(user_id, state)
            return state.snapshot()

    async def update(
        self, user_id: str, mutate: Callable[[UserGoalState], None]
    ) -> UserGoalState:
        """
        Apply ``mutate`` to the user's state under the user's lock.

        ``mutate`` works on a copy which replaces the live state only if it
        returns normally, so a failing update leaves the previous state in
        place.  The committed state is persisted and a snapshot returned.
        """
        slot = self._slot(user_id)
        async with slot.lock:
            current, _ = await self._ensure_state(user_id, slot)
            work = current.snapshot()
            try:
                mutate(work)
            except Exception:
                logger.exception(
                    "Goal state update failed for user '%s'; keeping previous state", user_id
                )
                return current.snapshot()
            slot.state = work
            await self._save(user_id, work)
            return work.snapshot()

    async def _save(self, user_id: str, state: UserGoalState) -> None:
        if self._store is None:
            return
        try:
            await self._store.save_state(user_id, state.snapshot())
        except Exception as e:
            logger.warning("Failed to persist goal state for user '%s': %s", user_id, e)

    # -- turn sequencing -----------------------------------------------------

    def accept_turn(self, user_id: str) -> int:
        """Hand out the next turn ticket for ``user_id``."""
        slot = self._slot(user_id)
        ticket = slot.next_ticket
        slot.next_ticket += 1
        return ticket

    async def wait_for_turn(self, user_id: str, ticket: int) -> None:
        """Wait until every earlier ticket for this user has finished."""
        slot = self._slot(user_id)
        async with slot.turn_done:
            await slot.turn_done.wait_for(lambda: slot.next_to_apply >= ticket)

    async def finish_turn(self, user_id: str, ticket: int) -> None:
        """Mark ``ticket`` finished (applied or abandoned) and wake later turns."""
        slot = self._slot(user_id)
        async with slot.turn_done:
            slot.finished.add(ticket)
            while slot.next_to_apply in slot.finished:
                slot.finished.discard(slot.next_to_apply)
                slot.next_to_apply += 1
            slot.turn_done.notify_all()

    # -- read side -----------------------------------------------------------

    def snapshot(self, user_id: str) -> Optional[UserGoalState]:
        slot = self._slots.get(user_id)
        if slot is None or slot.state is None:
            return None
        return slot.state.snapshot()

    def snapshot_all(self) -> List[UserGoalState]:
        return [slot.state.snapshot() for slot in list(self._slots.values()) if slot.state]

    def user_ids(self) -> List[str]:
        return [uid for uid, slot in list(self._slots.items()) if slot.state is not None]

    def __contains__(self, user_id: object) -> bool:
        slot = self._slots.get(user_id) if isinstance(user_id, str) else None
        return slot is not None and slot.state is not None

    def __len__(self) -> int:
        return len(self.user_ids())
