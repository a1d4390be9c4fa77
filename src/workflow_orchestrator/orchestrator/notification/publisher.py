"""Notification capability used for dead-letter publishing."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Protocol

import requests

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, topic: str, message: str) -> None: ...


@dataclass(frozen=True, slots=True)
class PublishedMessage:
    topic: str
    message: str


class MemoryPublisher:
    """Keep published messages in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: list[PublishedMessage] = []

    def publish(self, topic: str, message: str) -> None:
        with self._lock:
            self._messages.append(PublishedMessage(topic=topic, message=message))

    @property
    def messages(self) -> list[PublishedMessage]:
        with self._lock:
            return list(self._messages)


class LoggingPublisher:
    """Write notifications to the log instead of an external channel."""

    def publish(self, topic: str, message: str) -> None:
        logger.warning("Notification published", extra={"topic": topic, "notification": message})


class WebhookPublisher:
    """POST notifications to an HTTP endpoint as `{"topic": ..., "message": ...}`."""

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def publish(self, topic: str, message: str) -> None:
        resp = self._session.post(
            self._url, json={"topic": topic, "message": message}, timeout=self._timeout
        )
        resp.raise_for_status()
