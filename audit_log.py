"""Audit trail sink used by the designer after a successful save."""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_PATH = Path("audit_log.json")
MAX_ENTRIES = 1000
AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE", "LOGIN", "EXPORT", "PAYMENT")


class Actor(NamedTuple):
    name: str
    role: str = "Admin"


class AuditEntry(NamedTuple):
    id: str
    timestamp: str
    user: str
    role: str
    action: str
    module: str
    details: str


def format_timestamp(moment: datetime) -> str:
    """``17 Oct 2026 at 11:05 pm`` style stamp shown in the audit viewer."""

    hour = moment.hour % 12 or 12
    meridiem = "am" if moment.hour < 12 else "pm"
    return f"{moment.day} {moment:%b %Y} at {hour}:{moment:%M} {meridiem}"


def make_entry(
    actor: Union[Actor, str],
    action: str,
    module: str,
    message: str,
    *,
    now: Optional[datetime] = None,
) -> AuditEntry:
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action {action!r}")
    if isinstance(actor, str):
        actor = Actor(actor)
    return AuditEntry(
        id=uuid.uuid4().hex[:9],
        timestamp=format_timestamp(now or datetime.now()),
        user=actor.name,
        role=actor.role,
        action=action,
        module=module,
        details=message,
    )


class AuditLog:
    """Newest-first audit trail capped at :data:`MAX_ENTRIES`."""

    def entries(self) -> List[AuditEntry]:
        raise NotImplementedError

    def _write(self, entries: List[AuditEntry]) -> None:
        raise NotImplementedError

    def record(self, actor: Union[Actor, str], action: str, module: str, message: str) -> AuditEntry:
        entry = make_entry(actor, action, module, message)
        self._write(([entry] + self.entries())[:MAX_ENTRIES])
        logger.info("[%s] %s/%s: %s", entry.user, action, module, message)
        return entry


class InMemoryAuditLog(AuditLog):
    def __init__(self) -> None:
        self._entries: List[AuditEntry] = []

    def entries(self) -> List[AuditEntry]:
        return list(self._entries)

    def _write(self, entries: List[AuditEntry]) -> None:
        self._entries = list(entries)


class JsonFileAuditLog(AuditLog):
    """Audit trail kept as a JSON array on disk."""

    def __init__(self, path: Union[str, Path] = DEFAULT_AUDIT_PATH) -> None:
        self.path = Path(path)

    def entries(self) -> List[AuditEntry]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable audit log %s: %s", self.path, exc)
            return []
        entries = []
        for item in raw:
            try:
                entries.append(AuditEntry(**item))
            except TypeError:
                logger.warning("Dropping malformed audit entry: %r", item)
        return entries

    def _write(self, entries: List[AuditEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [entry._asdict() for entry in entries]
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
