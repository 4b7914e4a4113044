from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from studyq.models import Account
from studyq.utils import as_utc


class OutcomeKind(str, Enum):
    SUCCESS = "SUCCESS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INVALID_CURRENT_PASSWORD = "INVALID_CURRENT_PASSWORD"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    DUPLICATE_ID = "DUPLICATE_ID"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    SYSTEM_ERROR = "SYSTEM_ERROR"


MESSAGES = {
    OutcomeKind.SUCCESS: "OK",
    OutcomeKind.INVALID_CREDENTIALS: "Invalid username or password",
    OutcomeKind.ACCOUNT_INACTIVE: "Account is inactive. Please contact administrator.",
    OutcomeKind.ACCOUNT_LOCKED: "Account is temporarily locked due to too many failed attempts",
    OutcomeKind.INVALID_CURRENT_PASSWORD: "Current password is incorrect",
    OutcomeKind.DUPLICATE_EMAIL: "Email address already exists",
    OutcomeKind.DUPLICATE_ID: "User ID already exists",
    OutcomeKind.NOT_FOUND: "User not found",
    OutcomeKind.INVALID_INPUT: "The request contains invalid data",
    OutcomeKind.SYSTEM_ERROR: "The request could not be completed due to a system error",
}


@dataclass(frozen=True)
class AccountProfile:
    """Public view of an account: no password hash, no lockout counters."""

    user_id: str
    name: str
    email: str
    role: str
    is_active: bool
    force_password_change: bool
    created_at: datetime | None
    last_login: datetime | None = None
    whatsapp_number: str | None = None
    academic_year: int | None = None
    current_semester: int | None = None

    @staticmethod
    def from_account(account: Account) -> "AccountProfile":
        return AccountProfile(
            user_id=account.user_id,
            name=account.name,
            email=account.email,
            role=account.role,
            is_active=bool(account.is_active),
            force_password_change=bool(account.force_password_change),
            created_at=as_utc(account.created_at),
            last_login=as_utc(account.last_login),
            whatsapp_number=account.whatsapp_number,
            academic_year=account.academic_year,
            current_semester=account.current_semester,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "whatsapp_number": self.whatsapp_number,
            "academic_year": self.academic_year,
            "current_semester": self.current_semester,
            "is_active": self.is_active,
            "force_password_change": self.force_password_change,
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class AuthSession:
    """Explicit authentication context handed to callers after login."""

    profile: AccountProfile
    token: str

    @property
    def user_id(self) -> str:
        return self.profile.user_id

    @property
    def role(self) -> str:
        return self.profile.role

    @property
    def is_admin(self) -> bool:
        return self.profile.role == "admin"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    message: str
    account: AccountProfile | None = None
    token: str | None = None
    temp_password: str | None = None
    notified: bool = False

    @property
    def success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def session(self) -> AuthSession | None:
        if self.account is None or self.token is None:
            return None
        return AuthSession(profile=self.account, token=self.token)

    @staticmethod
    def ok(
        account: AccountProfile | None = None,
        token: str | None = None,
        temp_password: str | None = None,
    ) -> "Outcome":
        return Outcome(
            OutcomeKind.SUCCESS,
            MESSAGES[OutcomeKind.SUCCESS],
            account=account,
            token=token,
            temp_password=temp_password,
        )

    @staticmethod
    def fail(kind: OutcomeKind, message: str | None = None) -> "Outcome":
        return Outcome(kind, message or MESSAGES[kind])


HTTP_STATUS = {
    OutcomeKind.SUCCESS: 200,
    OutcomeKind.INVALID_CREDENTIALS: 401,
    OutcomeKind.ACCOUNT_INACTIVE: 403,
    OutcomeKind.ACCOUNT_LOCKED: 423,
    OutcomeKind.INVALID_CURRENT_PASSWORD: 400,
    OutcomeKind.DUPLICATE_EMAIL: 409,
    OutcomeKind.DUPLICATE_ID: 409,
    OutcomeKind.NOT_FOUND: 404,
    OutcomeKind.INVALID_INPUT: 400,
    OutcomeKind.SYSTEM_ERROR: 500,
}
