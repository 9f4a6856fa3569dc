"""
NotificationOutbox -- fire-and-forget notifications after commit.

Responsibility:
    Services queue events on the session while they work; the queue is
    handed to the injected ``Notifier`` only after the outer transaction
    commits, and discarded if it rolls back.  A failing notifier is logged
    and never affects the committed data.

Architecture position:
    Kernel > Services -- imperative shell.  The queue lives in
    ``session.info`` so every service sharing a session shares the outbox.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session

from backoffice_kernel.domain.collaborators import Notifier, NullNotifier
from backoffice_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

_QUEUE_KEY = "backoffice_outbox"
_NOTIFIER_KEY = "backoffice_notifier"


class NotificationOutbox:

    def __init__(self, session: Session, notifier: Notifier | None = None):
        self.session = session
        if notifier is not None or _NOTIFIER_KEY not in session.info:
            session.info[_NOTIFIER_KEY] = notifier or NullNotifier()
        if _QUEUE_KEY not in session.info:
            session.info[_QUEUE_KEY] = []
            event.listen(session, "after_commit", _dispatch)
            event.listen(session, "after_transaction_end", _discard_uncommitted)

    def enqueue(self, event_type: str, payload: dict[str, Any]) -> None:
        self.session.info[_QUEUE_KEY].append((event_type, payload))

    @property
    def pending(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self.session.info.get(_QUEUE_KEY, ()))


def _dispatch(session: Session) -> None:
    queue = session.info.get(_QUEUE_KEY) or []
    if not queue:
        return
    notifier: Notifier = session.info.get(_NOTIFIER_KEY) or NullNotifier()
    events, queue[:] = list(queue), []
    for event_type, payload in events:
        try:
            notifier.notify(event_type, payload)
        except Exception:
            # Delivery is best-effort; the transaction is already committed.
            logger.warning(
                "notification_dispatch_failed",
                extra={"event_type": event_type},
                exc_info=True,
            )


def _discard_uncommitted(session: Session, transaction) -> None:
    # Runs after after_commit; anything still queued belongs to a rolled back transaction
    if transaction.parent is not None:
        return
    queue = session.info.get(_QUEUE_KEY)
    if queue:
        logger.info("notifications_discarded", extra={"count": len(queue)})
        queue.clear()


def outbox_mark(session: Session) -> int:
    return len(session.info.get(_QUEUE_KEY, ()))


def outbox_rewind(session: Session, mark: int) -> None:
    """Drop events queued after ``mark`` (their SAVEPOINT rolled back)."""
    queue = session.info.get(_QUEUE_KEY)
    if queue is not None and len(queue) > mark:
        del queue[mark:]
