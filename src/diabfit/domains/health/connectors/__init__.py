"""Device connectors: the notification center and the health data store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from diabfit.domains.health.domain_logic.reminders import ReminderRequest


@runtime_checkable
class NotificationCenter(Protocol):
    """Abstract interface for a platform notification scheduler.

    Requests are keyed by identifier; adding a request with an existing
    identifier replaces it.
    """

    def is_authorized(self) -> bool:
        """Whether the user allowed notifications."""
        ...

    def request_authorization(self) -> bool:
        """Ask for permission; returns the resulting authorization state."""
        ...

    def add(self, request: ReminderRequest) -> None:
        """Schedule a pending request."""
        ...

    def pending_requests(self) -> list[ReminderRequest]:
        """All requests that have not fired yet, in fire order."""
        ...

    def remove_pending(self, identifiers: list[str]) -> None:
        """Drop pending requests by identifier; unknown identifiers are ignored."""
        ...
