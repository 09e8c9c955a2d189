"""User-visible notices (the dashboard's toasts)."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

from .models import now_ms

logger = logging.getLogger(__name__)

DEFAULT_DISMISS_MS = 4200


class Notifier(Protocol):
    def __call__(self, message: str, severity: str = "info", auto_dismiss_ms: int = DEFAULT_DISMISS_MS) -> None: ...


class LoggingNotifier:
    """Notifier that only logs."""

    def __call__(self, message: str, severity: str = "info", auto_dismiss_ms: int = DEFAULT_DISMISS_MS) -> None:
        level = logging.WARNING if severity in ("warning", "error") else logging.INFO
        logger.log(level, "Notice: %s", message)


@dataclass(frozen=True, slots=True)
class Notice:
    message: str
    severity: str
    auto_dismiss_ms: int
    created: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "severity": self.severity,
            "auto_dismiss_ms": self.auto_dismiss_ms,
            "created": self.created,
        }


class RecordingNotifier(LoggingNotifier):
    """Logs and keeps the most recent notices for the web UI to poll."""

    def __init__(self, maxlen: int = 50) -> None:
        self.notices: deque[Notice] = deque(maxlen=maxlen)

    def __call__(self, message: str, severity: str = "info", auto_dismiss_ms: int = DEFAULT_DISMISS_MS) -> None:
        super().__call__(message, severity, auto_dismiss_ms)
        self.notices.append(Notice(message, severity, auto_dismiss_ms))
