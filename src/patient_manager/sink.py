"""
Destinations for human-readable outcome messages.

The session reports one informational message as each operation starts and
one terminal message when it finishes. Where those messages end up is the
host application's concern; two implementations are provided here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from patient_manager.outcome import Severity

logger = logging.getLogger(__name__)

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.ERROR: logging.ERROR,
}


class ResultSink(Protocol):
    def report(self, message: str, severity: Severity) -> None: ...


class LoggingSink:
    """Writes messages to a :mod:`logging` logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def report(self, message: str, severity: Severity) -> None:
        if severity is not Severity.INFO:
            message = f"{severity.upper()}: {message}"
        self.log.log(_LEVELS[severity], message)


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    severity: Severity
    message: str

    def __str__(self) -> str:
        return (
            f"[{self.timestamp.strftime('%H:%M:%S')}] "
            f"{self.severity.upper()}: {self.message}"
        )


@dataclass
class CollectingSink:
    """
    Keeps every reported message in memory, in order.

    Used by the web front end to return the messages produced while handling a
    single request.

    :param entries: Messages reported so far, oldest first.
    :param forward: Optional sink that also receives every message.
    """

    entries: list[LogEntry] = field(default_factory=list)
    forward: ResultSink | None = None

    def report(self, message: str, severity: Severity) -> None:
        self.entries.append(LogEntry(datetime.now(), severity, message))
        if self.forward is not None:
            self.forward.report(message, severity)

    @property
    def messages(self) -> list[str]:
        return [entry.message for entry in self.entries]

    def clear(self) -> None:
        self.entries.clear()
