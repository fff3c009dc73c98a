"""
Bounded history of membership roots per group.

A proof names the root it was generated against. Group membership keeps
changing while proofs are in flight, so besides the current root the ledger
accepts superseded roots for ``validity_window`` seconds after they were
replaced. At most ``capacity`` superseded roots are retained per group; older
ones are pruned and permanently rejected.

Reads and writes share one re-entrant lock (``ledger.lock``). The claim engine
holds it for the whole duration of a claim, which serializes claims with
membership changes.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from .config import DEFAULT_ROOT_HISTORY_CAPACITY, DEFAULT_ROOT_VALIDITY_WINDOW
from .events import EventBus, RootAdvanced
from .exceptions import ConfigurationError, InvalidRootError
from .hashing import require_field_element, short_hex
from .types import RootRecord

logger = logging.getLogger(__name__)


class MembershipRootLedger:
    def __init__(
        self,
        validity_window: float = DEFAULT_ROOT_VALIDITY_WINDOW,
        capacity: int = DEFAULT_ROOT_HISTORY_CAPACITY,
        *,
        lock: Optional[threading.RLock] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        if validity_window <= 0:
            raise ConfigurationError("validity_window must be positive")
        if capacity < 1:
            raise ConfigurationError("capacity must be >= 1")
        self._window = float(validity_window)
        self._capacity = int(capacity)
        self._lock = lock or threading.RLock()
        self._events = events
        # Oldest first; the last entry is the current root.
        self._histories: Dict[int, List[RootRecord]] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def validity_window(self) -> float:
        return self._window

    @property
    def capacity(self) -> int:
        return self._capacity

    def on_membership_change(self, group_id: int, new_root: int, at_time: float) -> None:
        """
        Record ``new_root`` as the group's current root.

        The previous current root is stamped ``superseded_at = at_time``;
        expired and over-capacity entries are pruned.
        """
        require_field_element(new_root, "new_root")
        at_time = float(at_time)

        with self._lock:
            history = self._histories.setdefault(group_id, [])
            if history and history[-1].root == new_root:
                return

            if history:
                current = history[-1]
                superseded_at = at_time
                if at_time < current.created_at:
                    logger.warning(
                        "Group %s: membership change at %.3f predates current root (%.3f)",
                        group_id,
                        at_time,
                        current.created_at,
                    )
                    superseded_at = current.created_at
                history[-1] = RootRecord(
                    root=current.root,
                    created_at=current.created_at,
                    superseded_at=superseded_at,
                )

            # A root that reappears becomes current again; drop its stale entry.
            history[:] = [r for r in history if r.root != new_root]
            history.append(RootRecord(root=new_root, created_at=at_time))
            pruned = self._prune(history, at_time)
            logger.info(
                "Group %s root advanced to %s (%d retained, %d pruned)",
                group_id,
                short_hex(new_root),
                len(history),
                pruned,
            )

        if self._events is not None:
            self._events.publish(RootAdvanced(group_id=group_id, root=new_root, at_time=at_time))

    def is_acceptable(self, group_id: int, root: int, at_time: float) -> bool:
        """
        Return True if ``root`` may be used for a proof at ``at_time``.

        Acceptable iff it is the current root, or it is retained and was
        superseded less than ``validity_window`` seconds before ``at_time``.
        """
        with self._lock:
            return self._classify(group_id, root, at_time) == "ok"

    def check(self, group_id: int, root: int, at_time: float) -> None:
        """
        Raise ``InvalidRootError`` unless ``root`` is acceptable.
        """
        with self._lock:
            verdict = self._classify(group_id, root, at_time)
        if verdict == "ok":
            return
        if verdict == "unknown_group":
            raise InvalidRootError(f"Group {group_id} has no membership roots")
        if verdict == "expired":
            raise InvalidRootError(f"Root is outside the {self._window:g}s validity window")
        raise InvalidRootError("Root is not in the group's root history")

    def current_root(self, group_id: int) -> Optional[int]:
        with self._lock:
            history = self._histories.get(group_id)
            return history[-1].root if history else None

    def history(self, group_id: int) -> Tuple[RootRecord, ...]:
        """Retained records, oldest first; the last one is current."""
        with self._lock:
            return tuple(self._histories.get(group_id, ()))

    def groups(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._histories)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "validity_window": self._window,
                "capacity": self._capacity,
                "histories": [
                    {"group_id": gid, "records": [r.to_dict() for r in records]}
                    for gid, records in self._histories.items()
                ],
            }

    def load_dict(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._histories = {
                int(entry["group_id"]): [RootRecord.from_dict(r) for r in entry["records"]]
                for entry in data.get("histories", [])
            }

    def _classify(self, group_id: int, root: int, at_time: float) -> str:
        history = self._histories.get(group_id)
        if not history:
            return "unknown_group"
        if history[-1].root == root:
            return "ok"
        for record in history[:-1]:
            if record.root == root:
                if record.superseded_at is None:
                    return "expired"
                # A negative age means mismatched clocks; fail closed.
                elapsed = at_time - record.superseded_at
                if 0 <= elapsed < self._window:
                    return "ok"
                return "expired"
        return "unknown_root"

    def _prune(self, history: List[RootRecord], at_time: float) -> int:
        before = len(history)
        current = history[-1]
        superseded = [
            r
            for r in history[:-1]
            if r.superseded_at is not None and at_time - r.superseded_at < self._window
        ]
        if len(superseded) > self._capacity:
            superseded = superseded[-self._capacity:]
        history[:] = superseded + [current]
        return before - len(history)