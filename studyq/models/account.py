from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint, func

from .db import Base

ROLES = ("admin", "teacher", "student")


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("email", name="uq_accounts_email"),
        CheckConstraint("role IN ('admin', 'teacher', 'student')", name="ck_accounts_role"),
        CheckConstraint("failed_login_attempts >= 0", name="ck_accounts_failed_attempts"),
    )

    user_id = Column(String(32), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(16), nullable=False)
    whatsapp_number = Column(String(32))
    academic_year = Column(Integer)
    current_semester = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)
    force_password_change = Column(Boolean, nullable=False, default=True)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True))
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
