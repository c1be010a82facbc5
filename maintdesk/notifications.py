"""Outgoing email notifications.

Sending is fire-and-forget: dispatchers log delivery problems and never raise
them to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class EmailNotification:
    to: str
    subject: str
    body: str

    def to_payload(self) -> dict[str, str]:
        return {"to_user": self.to, "email_subject": self.subject, "email_body": self.body}


class NotificationDispatcher(Protocol):
    async def send(self, notification: EmailNotification) -> None:
        ...


class EmailNotificationDispatcher:
    """POST notifications to the email-sending function."""

    def __init__(self, function_url: str, *, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._function_url = function_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, notification: EmailNotification) -> None:
        if not notification.to:
            logger.warning("Skipping notification %r without a recipient", notification.subject)
            return
        try:
            response = await self._client.post(self._function_url, json=notification.to_payload())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Error sending email to %s: %s", notification.to, exc)
            return
        logger.info("Sent %r to %s", notification.subject, notification.to)

    async def aclose(self) -> None:
        await self._client.aclose()


class LoggingNotificationDispatcher:
    """Dispatcher used when no email function is configured."""

    async def send(self, notification: EmailNotification) -> None:
        logger.info("Email function not configured; dropping %r for %s", notification.subject, notification.to)
