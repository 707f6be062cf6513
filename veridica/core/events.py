"""Proof event bus: explicit publish/subscribe for resolution outcomes.

Frontends that want to refresh on new proofs subscribe here instead of
listening for ambient notifications.  The bus is optional: the resolver
returns the same result whether or not anything is subscribed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ProofEventKind(str, Enum):
    REGISTERED = "registered"
    CONFIRMED_EXISTING = "confirmed_existing"
    CONFLICT = "conflict"
    UNVERIFIABLE = "unverifiable"
    UNMIRRORED = "unmirrored"
    RECONCILED = "reconciled"


class ProofEvent(BaseModel):
    """A single resolution outcome."""

    model_config = ConfigDict(frozen=True)

    kind: ProofEventKind
    fingerprint: str
    requester_id: str
    transaction_id: str | None = None
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    details: dict[str, Any] = Field(default_factory=dict)


ProofEventHandler = Callable[[ProofEvent], None]


class ProofEventBus:
    """Routes ``ProofEvent`` objects to handlers registered per kind.

    A failing handler is logged and skipped; it never changes the outcome
    already decided by the resolver.
    """

    def __init__(self) -> None:
        self._handlers: dict[ProofEventKind, list[ProofEventHandler]] = {
            kind: [] for kind in ProofEventKind
        }

    def subscribe(self, kind: ProofEventKind, handler: ProofEventHandler) -> None:
        """Register a handler for a specific event kind."""
        self._handlers[kind].append(handler)

    def subscribe_all(self, handler: ProofEventHandler) -> None:
        for kind in ProofEventKind:
            self._handlers[kind].append(handler)

    def publish(self, event: ProofEvent) -> int:
        """Deliver *event*; returns the number of handlers that succeeded."""
        delivered = 0
        for handler in self._handlers[event.kind]:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Proof event handler %r failed on %s", handler, event.kind.value
                )
                continue
            delivered += 1
        return delivered
