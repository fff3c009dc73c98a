"""
Structured notifications published by the engine.

Subscribers register with an ``EventBus`` and receive ``AirdropCreated``,
``ClaimSettled`` and ``RootAdvanced`` records synchronously, after the state
change they describe has committed. A failing subscriber is logged and does
not affect the publisher or other subscribers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from .types import Airdrop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class AirdropCreated(Event):
    airdrop: Airdrop

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event_type, **self.airdrop.to_dict()}


@dataclass(frozen=True)
class ClaimSettled(Event):
    airdrop_id: int
    receiver: str
    token: str
    amount: int
    nullifier_hash: int
    settled_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type,
            "airdrop_id": self.airdrop_id,
            "receiver": self.receiver,
            "token": self.token,
            "amount": self.amount,
            "nullifier_hash": self.nullifier_hash,
            "settled_at": self.settled_at,
        }


@dataclass(frozen=True)
class RootAdvanced(Event):
    group_id: int
    root: int
    at_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type,
            "group_id": self.group_id,
            "root": self.root,
            "at_time": self.at_time,
        }


EventHandler = Callable[[Event], None]


class EventBus:
    """
    In-process publish/subscribe channel.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe(print, ClaimSettled)
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: List[Tuple[EventHandler, Optional[Tuple[Type[Event], ...]]]] = []
        self._lock = threading.RLock()
        self._published = 0
        self._handler_errors = 0

    def subscribe(
        self, handler: EventHandler, *event_types: Type[Event]
    ) -> Callable[[], None]:
        """
        Register ``handler`` for ``event_types`` (all events if none given).

        Returns:
            A callable that removes the subscription.
        """
        registration = (handler, tuple(event_types) or None)
        with self._lock:
            self._handlers.append(registration)

        def _unsubscribe() -> None:
            with self._lock:
                if registration in self._handlers:
                    self._handlers.remove(registration)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            handlers = list(self._handlers)
            self._published += 1
        for handler, types in handlers:
            if types is not None and not isinstance(event, types):
                continue
            try:
                handler(event)
            except Exception:
                with self._lock:
                    self._handler_errors += 1
                logger.exception(
                    "Event handler %r failed for %s", handler, event.event_type
                )

    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "subscribers": len(self._handlers),
                "published": self._published,
                "handler_errors": self._handler_errors,
            }
