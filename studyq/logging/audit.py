from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.orm import Session

from studyq.models import AuditEvent


class AuditAction(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PASSWORD_RESET = "PASSWORD_RESET"
    USER_CREATE = "USER_CREATE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"


class AuditLogger:
    """Append-only audit trail.

    Recording is best-effort: a failed write is rolled back and logged, and the
    caller carries on with whatever it was doing.
    """

    def __init__(self, session: Session, logger: logging.Logger | None = None) -> None:
        self.session = session
        self.logger = logger or logging.getLogger("studyq.audit")

    def record(
        self,
        actor_id: str | None,
        action: AuditAction | str,
        detail: str,
        timestamp: datetime | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditEvent | None:
        kind = action.value if isinstance(action, AuditAction) else str(action)
        entry = AuditEvent(
            user_id=actor_id,
            action=kind,
            details={"message": detail},
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=timestamp or datetime.now(timezone.utc),
        )
        try:
            self._persist(entry)
        except Exception:
            self.logger.exception("Failed to record audit event action=%s actor=%s", kind, actor_id)
            return None
        self._log_entry(entry)
        return entry

    def _persist(self, entry: AuditEvent) -> None:
        self.session.add(entry)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(entry)

    def _log_entry(self, entry: AuditEvent) -> None:
        payload = {"category": "audit"}
        for column in entry.__table__.columns:
            payload[column.name] = getattr(entry, column.name)
        self.logger.info(json.dumps(payload, default=str))
