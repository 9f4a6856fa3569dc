"""
Collaborator protocols the kernel calls out to.

``StatementAggregator`` recomputes a card statement total whenever a
card-linked bill changes.  ``Notifier`` receives fire-and-forget events
after a transaction commits.  Both are injected; the kernel ships a
database-backed aggregator (services/statement_aggregator.py) and a
no-op notifier.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class StatementAggregator(Protocol):

    def recompute_statement(self, card_id: UUID, month: int, year: int) -> Decimal:
        """Recompute and return the statement total for the card and month."""
        ...


@runtime_checkable
class Notifier(Protocol):

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


class NullNotifier:
    """Discards every event."""

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        return None


class RecordingNotifier:
    """Keeps events in memory; used by tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, dict(payload)))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event_type]
