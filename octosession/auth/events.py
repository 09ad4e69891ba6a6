"""Session-to-UI notification channel.

A one-way, fire-and-forget bus from the session manager to the
presentation layer. Listeners receive every ``SessionEvent``; a listener
that raises is logged and does not prevent delivery to the others.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from ..types import SessionEvent, SessionEventType


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..types import Session


logger = logging.getLogger("octosession.auth")


class SessionEventChannel:
    """Typed event bus carrying ``SessionEvent`` values."""

    def __init__(self) -> None:
        """Initialize an empty channel."""
        self._listeners: list[Callable[[SessionEvent], Any]] = []

    def __len__(self) -> int:
        """Number of registered listeners."""
        return len(self._listeners)

    def subscribe(self, callback: Callable[[SessionEvent], Any]) -> Callable[[], None]:
        """Register a listener.

        Parameters
        ----------
        callback : callable
            Invoked synchronously with each emitted ``SessionEvent``.

        Returns
        -------
        callable
            A no-argument function that removes the listener again.
        """
        if callback not in self._listeners:
            self._listeners.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[[SessionEvent], Any]) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()

    def emit(self, event: SessionEvent) -> None:
        """Deliver ``event`` to every listener in registration order."""
        logger.debug("Session event: %s", event.type.value)
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception("Session event listener failed for %s", event.type.value)

    def emit_type(
        self,
        event_type: SessionEventType,
        session: Session | None = None,
        error: BaseException | None = None,
    ) -> SessionEvent:
        """Build and emit an event in one step.

        Returns
        -------
        SessionEvent
            The event that was delivered.
        """
        event = SessionEvent(type=event_type, session=session, error=error)
        self.emit(event)
        return event
