# shopbook/notifier.py

"""
Outbound notification channels.

Message content is produced downstream; the core only says what happened
(`kind`) and hands over the facts (`context`). Implementations raise
NotificationDispatchError when a message was not accepted.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from .errors import NotificationDispatchError

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    def send_email(self, to: str, kind: str, context: dict) -> None:
        pass

    @abstractmethod
    def send_sms(self, to: str, kind: str, context: dict) -> None:
        pass

    def close(self) -> None:
        pass


class LogNotifier(Notifier):
    """Development notifier: every message is accepted and logged."""

    def send_email(self, to: str, kind: str, context: dict) -> None:
        logger.info("📧 [%s] email to %s: %s", kind, to, context)

    def send_sms(self, to: str, kind: str, context: dict) -> None:
        logger.info("📱 [%s] sms to %s: %s", kind, to, context)


class WebhookNotifier(Notifier):
    """Posts every message as JSON to a delivery service."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def _post(self, channel: str, to: str, kind: str, context: dict) -> None:
        payload = {"channel": channel, "to": to, "kind": kind, "context": context}
        try:
            response = self._client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDispatchError(f"{channel} delivery failed: {e}") from e

    def send_email(self, to: str, kind: str, context: dict) -> None:
        self._post("email", to, kind, context)

    def send_sms(self, to: str, kind: str, context: dict) -> None:
        self._post("sms", to, kind, context)

    def close(self) -> None:
        self._client.close()


def get_notifier(webhook_url: Optional[str], timeout: float = 10.0) -> Notifier:
    if webhook_url:
        return WebhookNotifier(webhook_url, timeout=timeout)
    return LogNotifier()
