"""Append-only audit trail for scoring, corrections and status changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Kinds of audited events."""

    SCORE_CALCULATED = "score_calculated"
    MANUAL_CORRECTION_APPLIED = "manual_correction_applied"
    STATUS_CHANGED = "status_changed"
    RESULT_ISSUED = "result_issued"
    CERTIFICATE_GENERATED = "certificate_generated"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditLogEntry:
    """One audited event. Persistence and display belong to the caller."""

    event_type: AuditEventType
    payload: dict[str, Any]
    actor: str | None
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "payload": dict(self.payload),
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AuditLog:
    """
    Append-only sequence of audit entries.

    Entries can be added and read, never modified or removed.
    """

    clock: Callable[[], datetime] = utc_now
    _entries: list[AuditLogEntry] = field(default_factory=list, init=False, repr=False)

    def record(
        self,
        event_type: AuditEventType,
        payload: dict[str, Any] | None = None,
        actor: str | None = None,
        timestamp: datetime | None = None,
    ) -> AuditLogEntry:
        """Append an entry and return it."""
        entry = AuditLogEntry(
            event_type=event_type,
            payload=dict(payload or {}),
            actor=actor,
            timestamp=timestamp or self.clock(),
        )
        self._entries.append(entry)
        logger.debug("Audit %s by %s", event_type.value, actor or "system")
        return entry

    @property
    def entries(self) -> tuple[AuditLogEntry, ...]:
        return tuple(self._entries)

    def of_type(self, event_type: AuditEventType) -> list[AuditLogEntry]:
        return [e for e in self._entries if e.event_type is event_type]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AuditLogEntry]:
        return iter(tuple(self._entries))

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]
