# Overview: Outbound change-notification port called after committed mutations.

"""
Change notifier.

Workflows receive a notifier in their constructor and publish one ChangeEvent
after each successful commit. Delivery is best-effort: a failing notifier is
logged and never affects the outcome of the committed operation.

Implementations:
- LoggingNotifier: writes events to the Flask app logger (default)
- NullNotifier: drops events
- RecordingNotifier: keeps events in memory (tests, CLI inspection)

A real-time push adapter (websocket fan-out per tenant room) only needs to
implement publish(event).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol

from flask import current_app


@dataclass(frozen=True)
class ChangeEvent:
    tenant_id: str
    name: str
    message: str
    payload: dict = field(default_factory=dict)


class Notifier(Protocol):
    def publish(self, event: ChangeEvent) -> None:
        ...


class NullNotifier:
    def publish(self, event: ChangeEvent) -> None:
        return None


class LoggingNotifier:
    def publish(self, event: ChangeEvent) -> None:
        current_app.logger.info("[tenant-%s] %s: %s", event.tenant_id, event.name, event.message)


class RecordingNotifier:
    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[ChangeEvent] = []

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            self.events.append(event)

    def names(self) -> list[str]:
        with self._lock:
            return [e.name for e in self.events]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


NOTIFIERS = {
    "log": LoggingNotifier,
    "null": NullNotifier,
    "memory": RecordingNotifier,
}


def build_notifier(kind: str) -> Notifier:
    try:
        return NOTIFIERS[kind]()
    except KeyError:
        raise ValueError(f"Unknown notifier {kind!r}. Must be one of: {', '.join(NOTIFIERS)}")


def publish_safely(notifier: Notifier | None, event: ChangeEvent) -> None:
    """Publish after commit; failures are logged and swallowed."""
    if notifier is None:
        return
    try:
        notifier.publish(event)
    except Exception:
        current_app.logger.exception("Failed to publish %s event for tenant %s", event.name, event.tenant_id)
