from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping

from studyq.auth import AccountGuard, AccountProfile, AuthSession, NewAccount, Outcome, OutcomeKind
from studyq.logging import AuditAction
from studyq.store import AccountNotFoundError, DuplicateEmailError
from studyq.utils import utcnow

from .notifications import CredentialNotifier

logger = logging.getLogger("studyq.users")

CREATABLE_ROLES = ("teacher", "student")
EDITABLE_FIELDS = frozenset(
    {"name", "email", "whatsapp_number", "academic_year", "current_semester", "is_active"}
)
ID_PREFIXES = {"admin": "ADM", "teacher": "TCH", "student": "STD"}
_ID_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class UserFilters:
    role: str | None = None
    is_active: bool | None = None
    search: str | None = None


def generate_user_id(role: str, now: datetime | None = None) -> str:
    """Build identifiers like ``TCH-482913-K7Q`` from role, clock and randomness."""
    moment = now or utcnow()
    prefix = ID_PREFIXES.get(role, "STD")
    timestamp = str(int(moment.timestamp() * 1000))[-6:]
    suffix = "".join(secrets.choice(_ID_SUFFIX_ALPHABET) for _ in range(3))
    return f"{prefix}-{timestamp}-{suffix}"


class UserAdminService:
    def __init__(self, guard: AccountGuard, notifier: CredentialNotifier | None = None) -> None:
        self.guard = guard
        self.store = guard.store
        self.audit = guard.audit
        self.notifier = notifier

    def list_users(self, filters: UserFilters | None = None) -> list[AccountProfile]:
        profiles = [AccountProfile.from_account(account) for account in self.store.list_accounts()]
        if filters is None:
            return profiles
        if filters.role:
            profiles = [p for p in profiles if p.role == filters.role]
        if filters.is_active is not None:
            profiles = [p for p in profiles if p.is_active == filters.is_active]
        if filters.search:
            term = filters.search.strip().lower()
            profiles = [
                p
                for p in profiles
                if term in p.name.lower() or term in p.email.lower() or term in p.user_id.lower()
            ]
        return profiles

    async def create_user(
        self,
        name: str,
        email: str,
        role: str,
        whatsapp_number: str | None = None,
        academic_year: int | None = None,
        current_semester: int | None = None,
        actor: AuthSession | None = None,
    ) -> Outcome:
        if role not in CREATABLE_ROLES:
            return Outcome.fail(OutcomeKind.INVALID_INPUT, f"Role cannot be created here: {role}")
        if not name.strip() or not email.strip():
            return Outcome.fail(OutcomeKind.INVALID_INPUT, "Name and email are required")
        data = NewAccount(
            user_id=generate_user_id(role),
            name=name.strip(),
            email=email.strip().lower(),
            role=role,
            whatsapp_number=whatsapp_number,
            academic_year=academic_year,
            current_semester=current_semester,
        )
        outcome = await self.guard.create_account(data, actor=actor)
        if not outcome.success:
            return outcome
        notified = await self._notify(outcome, "created")
        return replace(outcome, notified=notified)

    def update_user(self, user_id: str, updates: Mapping[str, Any], actor: AuthSession | None = None) -> Outcome:
        rejected = set(updates) - EDITABLE_FIELDS
        if rejected:
            return Outcome.fail(OutcomeKind.INVALID_INPUT, f"Fields cannot be edited: {', '.join(sorted(rejected))}")
        fields = dict(updates)
        for key in ("name", "email"):
            if key not in fields:
                continue
            value = fields[key]
            if not isinstance(value, str) or not value.strip():
                return Outcome.fail(OutcomeKind.INVALID_INPUT, f"{key.capitalize()} must not be empty")
            fields[key] = value.strip().lower() if key == "email" else value.strip()
        try:
            updated = self.store.update(user_id, fields)
            profile = AccountProfile.from_account(updated)
        except AccountNotFoundError:
            return Outcome.fail(OutcomeKind.NOT_FOUND)
        except DuplicateEmailError:
            return Outcome.fail(OutcomeKind.DUPLICATE_EMAIL)
        except Exception:
            logger.exception("Updating user %s failed", user_id)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        changed = ", ".join(sorted(fields)) or "nothing"
        self.audit.record(_actor_id(actor), AuditAction.USER_UPDATE, f"Updated user {user_id}: {changed}")
        return Outcome.ok(account=profile)

    def delete_user(self, user_id: str, actor: AuthSession | None = None) -> Outcome:
        try:
            self.store.delete(user_id)
        except AccountNotFoundError:
            return Outcome.fail(OutcomeKind.NOT_FOUND)
        except Exception:
            logger.exception("Deleting user %s failed", user_id)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        self.audit.record(_actor_id(actor), AuditAction.USER_DELETE, f"Deleted user: {user_id}")
        return Outcome.ok()

    async def reset_password(self, user_id: str, actor: AuthSession | None = None) -> Outcome:
        outcome = await self.guard.reset_password(user_id, actor=actor)
        if not outcome.success:
            return outcome
        notified = await self._notify(outcome, "reset")
        return replace(outcome, notified=notified)

    def toggle_status(self, user_id: str, actor: AuthSession | None = None) -> Outcome:
        try:
            account = self.store.find_by_id(user_id)
        except Exception:
            logger.exception("Looking up user %s failed", user_id)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        if account is None:
            return Outcome.fail(OutcomeKind.NOT_FOUND)
        return self.update_user(user_id, {"is_active": not account.is_active}, actor=actor)

    async def _notify(self, outcome: Outcome, reason: str) -> bool:
        if self.notifier is None or outcome.account is None or outcome.temp_password is None:
            return False
        try:
            result = await self.notifier.send_credentials(outcome.account, outcome.temp_password, reason=reason)
        except Exception:
            logger.exception("Credential notification failed for %s", outcome.account.user_id)
            return False
        if not result.success:
            logger.info("Credentials for %s not delivered: %s", outcome.account.user_id, result.message)
        return result.success


def _actor_id(actor: AuthSession | None) -> str | None:
    return actor.user_id if actor else None
