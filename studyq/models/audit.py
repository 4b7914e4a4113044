from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, JSON, String, event, func

from .db import Base


class ImmutableLogMixin:
    @classmethod
    def __declare_last__(cls) -> None:
        event.listen(cls, "before_update", cls._deny_mutation)
        event.listen(cls, "before_delete", cls._deny_mutation)

    @staticmethod
    def _deny_mutation(mapper, connection, target) -> None:
        raise ValueError("Audit events are immutable")


class AuditEvent(ImmutableLogMixin, Base):
    __tablename__ = "audit_trail"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(32), index=True)
    action = Column(String(32), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
