from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import case, literal, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from studyq.models import Account

MUTABLE_FIELDS = frozenset(
    {
        "name",
        "email",
        "password_hash",
        "whatsapp_number",
        "academic_year",
        "current_semester",
        "is_active",
        "force_password_change",
        "failed_login_attempts",
        "locked_until",
        "last_login",
    }
)


class AccountStoreError(Exception):
    pass


class AccountNotFoundError(AccountStoreError):
    pass


class AccountConflictError(AccountStoreError):
    pass


class DuplicateEmailError(AccountConflictError):
    pass


class DuplicateIdError(AccountConflictError):
    pass


class AccountStore:
    """SQLAlchemy-backed persistence for accounts."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_handle(self, handle: str) -> Account | None:
        stmt = select(Account).where(Account.name == handle)
        try:
            return self.session.scalars(stmt).one_or_none()
        except SQLAlchemyError as exc:
            raise AccountStoreError("account lookup failed") from exc

    def find_by_id(self, user_id: str) -> Account | None:
        try:
            return self.session.get(Account, user_id)
        except SQLAlchemyError as exc:
            raise AccountStoreError("account lookup failed") from exc

    def list_accounts(self) -> list[Account]:
        stmt = select(Account).order_by(Account.created_at.desc(), Account.user_id.desc())
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise AccountStoreError("account listing failed") from exc

    def create(self, values: Mapping[str, Any]) -> Account:
        user_id = values.get("user_id")
        email = values.get("email")
        if user_id and self.find_by_id(user_id) is not None:
            raise DuplicateIdError(user_id)
        if email and self._email_taken(email):
            raise DuplicateEmailError(email)
        account = Account(**dict(values))
        self.session.add(account)
        self._commit()
        self.session.refresh(account)
        return account

    def update(self, user_id: str, fields: Mapping[str, Any]) -> Account:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise AccountStoreError(f"fields cannot be updated: {', '.join(sorted(unknown))}")
        account = self.find_by_id(user_id)
        if account is None:
            raise AccountNotFoundError(user_id)
        for key in ("name", "email"):
            if key in fields and not fields[key]:
                raise AccountStoreError(f"{key} must not be empty")
        email = fields.get("email")
        if email and email != account.email and self._email_taken(email):
            raise DuplicateEmailError(email)
        for key, value in fields.items():
            setattr(account, key, value)
        self._commit()
        self.session.refresh(account)
        return account

    def register_failure(self, user_id: str, threshold: int, lock_until: datetime) -> Account:
        """Count one failed login in a single statement.

        The increment and the lockout decision are evaluated by the database
        against the stored counter, so concurrent failures are never lost.
        """
        next_count = Account.failed_login_attempts + 1
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(
                failed_login_attempts=next_count,
                locked_until=case(
                    (next_count >= threshold, literal(lock_until, Account.__table__.c.locked_until.type)),
                    else_=Account.locked_until,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise AccountStoreError("failed to register login failure") from exc
        if result.rowcount == 0:
            self.session.rollback()
            raise AccountNotFoundError(user_id)
        self._commit()
        try:
            account = self.session.get(Account, user_id, populate_existing=True)
        except SQLAlchemyError as exc:
            raise AccountStoreError("account lookup failed") from exc
        if account is None:
            raise AccountNotFoundError(user_id)
        return account

    def delete(self, user_id: str) -> None:
        account = self.find_by_id(user_id)
        if account is None:
            raise AccountNotFoundError(user_id)
        self.session.delete(account)
        self._commit()

    def _email_taken(self, email: str) -> bool:
        stmt = select(Account.user_id).where(Account.email == email)
        try:
            return self.session.scalars(stmt).first() is not None
        except SQLAlchemyError as exc:
            raise AccountStoreError("account lookup failed") from exc

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise _conflict_from(exc) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise AccountStoreError("failed to persist account") from exc


def _conflict_from(exc: IntegrityError) -> AccountStoreError:
    message = str(exc.orig).lower()
    if "email" in message:
        return DuplicateEmailError(message)
    if "user_id" in message or "pkey" in message:
        return DuplicateIdError(message)
    return AccountStoreError(message)
