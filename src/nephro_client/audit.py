"""Audit trail for patient-data access and security events.

Every event is logged through ``logging`` and kept in a bounded in-memory
trail that is mirrored to the key-value backend under ``auditEvents`` so
it survives a restart of a file-backed client.
"""

from __future__ import annotations

import csv
import dataclasses
import io
import json
import logging
import time
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

from nephro_client.persistence import IPersistenceBackend
from nephro_client.session import SessionManager

log = logging.getLogger(__name__)

AUDIT_KEY = "auditEvents"

EventType = Literal["access", "security", "export", "validation"]


@dataclasses.dataclass
class AuditEvent:
    """One audit record. Unused fields stay ``None``."""

    type: EventType
    timestamp: str = dataclasses.field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    outcome: str = "success"
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    session_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: Optional[str] = None
    event_type: Optional[str] = None
    count: Optional[int] = None
    format: Optional[str] = None
    details: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)


FIELD_NAMES = [f.name for f in dataclasses.fields(AuditEvent)]


class AuditTrail:
    """Bounded audit log keyed to the current session's user.

    Parameters
    ----------
    session:
        Source of ``user_id`` / ``user_role`` stamped on each event.
    backend:
        Optional store mirroring the trail; ``None`` keeps it in memory only.
    max_events:
        Oldest events are dropped past this size.
    """

    def __init__(
        self,
        session: SessionManager,
        backend: IPersistenceBackend | None = None,
        max_events: int = 1000,
    ) -> None:
        self._session = session
        self._backend = backend
        self._max_events = max_events
        self._session_id = f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        self._events: list[AuditEvent] = self._restore()

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log_access(
        self,
        resource_type: str,
        resource_id: Any,
        action: str,
        outcome: str = "success",
    ) -> AuditEvent:
        """Record a read/create/update/delete of a resource."""
        return self._record(
            AuditEvent(
                type="access",
                resource_type=resource_type,
                resource_id=None if resource_id is None else str(resource_id),
                action=action,
                outcome=outcome,
            )
        )

    def log_security(
        self,
        event_type: str,
        details: Optional[dict[str, Any]] = None,
        outcome: str = "success",
    ) -> AuditEvent:
        """Record login, logout, registration, token refresh, role changes."""
        return self._record(
            AuditEvent(type="security", event_type=event_type, details=dict(details or {}), outcome=outcome)
        )

    def log_export(self, resource_type: str, count: int, fmt: str) -> AuditEvent:
        return self._record(AuditEvent(type="export", resource_type=resource_type, count=count, format=fmt))

    def log_validation(self, resource_type: str, resource_id: Any, errors: list[str]) -> AuditEvent:
        return self._record(
            AuditEvent(
                type="validation",
                resource_type=resource_type,
                resource_id=None if resource_id is None else str(resource_id),
                outcome="success" if not errors else "failure",
                details={"errors": list(errors)},
            )
        )

    def _record(self, event: AuditEvent) -> AuditEvent:
        identity = self._session.current()
        event.user_id = event.user_id or identity.user_id
        event.user_role = event.user_role or identity.role
        event.session_id = self._session_id

        self._events.append(event)
        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

        log.info(
            "audit | type=%s event=%s resource=%s/%s action=%s outcome=%s user_id=%s",
            event.type,
            event.event_type or "-",
            event.resource_type or "-",
            event.resource_id or "-",
            event.action or "-",
            event.outcome,
            event.user_id or "-",
        )
        self._persist()
        return event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resource_trail(self, resource_type: str, resource_id: Any) -> list[AuditEvent]:
        rid = str(resource_id)
        return [e for e in self._events if e.resource_type == resource_type and e.resource_id == rid]

    def user_activity(self, user_id: str) -> list[AuditEvent]:
        return [e for e in self._events if e.user_id == user_id]

    def compliance_report(self, start: datetime, end: datetime) -> dict[str, Any]:
        """Summary of events with ``start <= timestamp <= end``."""
        relevant = [e for e in self._events if start <= e.occurred_at <= end]
        return {
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "total_events": len(relevant),
            "by_type": dict(Counter(e.type for e in relevant)),
            "by_resource_type": dict(Counter(e.resource_type for e in relevant)),
            "by_user": dict(Counter(e.user_id for e in relevant)),
            "security_events": [e for e in relevant if e.type == "security"],
            "failed_access": [e for e in relevant if e.outcome != "success"],
            "data_exports": [e for e in relevant if e.type == "export"],
        }

    def clear_older_than(self, days: int = 30) -> int:
        """Drop events older than *days*; returns how many were removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        before = len(self._events)
        self._events = [e for e in self._events if e.occurred_at > cutoff]
        self._persist()
        return before - len(self._events)

    def export(self, fmt: Literal["json", "csv"] = "json") -> str:
        if fmt == "json":
            return json.dumps([dataclasses.asdict(e) for e in self._events], indent=2)
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=FIELD_NAMES)
            writer.writeheader()
            for event in self._events:
                row = dataclasses.asdict(event)
                row["details"] = json.dumps(row["details"]) if row["details"] else ""
                writer.writerow(row)
            return buffer.getvalue()
        raise ValueError(f"Unsupported export format: {fmt!r}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if self._backend is None:
            return
        self._backend.save(AUDIT_KEY, json.dumps([dataclasses.asdict(e) for e in self._events]))

    def _restore(self) -> list[AuditEvent]:
        if self._backend is None or not self._backend.exists(AUDIT_KEY):
            return []
        try:
            raw = json.loads(self._backend.load(AUDIT_KEY))
            return [AuditEvent(**item) for item in raw][-self._max_events:]
        except (ValueError, TypeError) as e:
            log.warning("Discarding unreadable audit trail: %s", e)
            return []
