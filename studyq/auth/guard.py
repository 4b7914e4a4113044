from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from studyq.config import Settings
from studyq.logging import AuditAction, AuditLogger, log_security_event
from studyq.models import ROLES
from studyq.store import AccountStore, DuplicateEmailError, DuplicateIdError
from studyq.utils import as_utc, utcnow

from .outcomes import AccountProfile, AuthSession, Outcome, OutcomeKind
from .passwords import PasswordHasher, generate_temp_password
from .tokens import TokenError, TokenService

logger = logging.getLogger("studyq.auth")


@dataclass(frozen=True)
class NewAccount:
    user_id: str
    name: str
    email: str
    role: str
    whatsapp_number: str | None = None
    academic_year: int | None = None
    current_semester: int | None = None


@dataclass(frozen=True)
class RequestContext:
    ip_address: str | None = None
    user_agent: str | None = None


class AccountGuard:
    """Authentication and lockout state machine for platform accounts.

    Every public operation returns an :class:`Outcome`; store and transport
    failures are logged and reported as ``SYSTEM_ERROR`` instead of raised.
    Store and audit calls are blocking and run in worker threads, one at a
    time, so the session is never shared between threads concurrently.
    """

    def __init__(
        self,
        store: AccountStore,
        audit: AuditLogger,
        tokens: TokenService,
        hasher: PasswordHasher | None = None,
        max_failed_attempts: int = 5,
        lockout_minutes: int = 15,
    ) -> None:
        self.store = store
        self.audit = audit
        self.tokens = tokens
        self.hasher = hasher or PasswordHasher()
        self.max_failed_attempts = max_failed_attempts
        self.lockout_minutes = lockout_minutes

    async def attempt_login(
        self,
        handle: str,
        password: str,
        now: datetime | None = None,
        context: RequestContext | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        ctx = context or RequestContext()
        if not handle or not password:
            await self._audit(None, AuditAction.LOGIN_FAILED, "Failed login attempt with empty credentials", moment, ctx)
            return Outcome.fail(OutcomeKind.INVALID_CREDENTIALS)
        try:
            account = await asyncio.to_thread(self.store.find_by_handle, handle)
        except Exception:
            logger.exception("Account lookup failed during login")
            await self._audit(None, AuditAction.LOGIN_FAILED, f"Login failed due to system error for username: {handle}", moment, ctx)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)

        if account is None:
            await self._audit(None, AuditAction.LOGIN_FAILED, f"Failed login attempt for username: {handle}", moment, ctx)
            return Outcome.fail(OutcomeKind.INVALID_CREDENTIALS)
        user_id = account.user_id
        if not account.is_active:
            await self._audit(user_id, AuditAction.LOGIN_FAILED, f"Login rejected for inactive user: {account.name}", moment, ctx)
            return Outcome.fail(OutcomeKind.ACCOUNT_INACTIVE)
        locked_until = as_utc(account.locked_until)
        if locked_until and locked_until > moment:
            await self._audit(user_id, AuditAction.LOGIN_FAILED, f"Login rejected for locked user: {account.name}", moment, ctx)
            return Outcome.fail(OutcomeKind.ACCOUNT_LOCKED)

        # Once verification starts the attempt must settle its counters and
        # audit entry even if the caller goes away.
        settle = asyncio.ensure_future(
            self._verify_and_settle(user_id, account.name, account.password_hash, password, moment, ctx)
        )
        return await asyncio.shield(settle)

    async def _verify_and_settle(
        self,
        user_id: str,
        name: str,
        password_hash: str,
        password: str,
        moment: datetime,
        ctx: RequestContext,
    ) -> Outcome:
        try:
            matched = await self.hasher.verify_async(password, password_hash)
            if not matched:
                lock_until = moment + timedelta(minutes=self.lockout_minutes)
                updated = await asyncio.to_thread(
                    self.store.register_failure, user_id, self.max_failed_attempts, lock_until
                )
                if updated.failed_login_attempts >= self.max_failed_attempts:
                    log_security_event(
                        user_id,
                        "account_locked",
                        "too many failed login attempts",
                        {"failed_attempts": updated.failed_login_attempts, "locked_until": updated.locked_until},
                    )
                await self._audit(user_id, AuditAction.LOGIN_FAILED, f"Failed login attempt for user: {name}", moment, ctx)
                return Outcome.fail(OutcomeKind.INVALID_CREDENTIALS)
            updated = await asyncio.to_thread(
                self.store.update,
                user_id,
                {"failed_login_attempts": 0, "locked_until": None, "last_login": moment},
            )
            profile = AccountProfile.from_account(updated)
            token = self.tokens.issue(profile.user_id, profile.role, moment)
        except Exception:
            logger.exception("Login failed for account %s", user_id)
            await self._audit(user_id, AuditAction.LOGIN_FAILED, "Login failed due to system error", moment, ctx)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        await self._audit(user_id, AuditAction.LOGIN_SUCCESS, "User logged in successfully", moment, ctx)
        return Outcome.ok(account=profile, token=token)

    async def change_password(
        self,
        account_id: str,
        current_password: str,
        new_password: str,
        now: datetime | None = None,
    ) -> Outcome:
        if not new_password:
            return Outcome.fail(OutcomeKind.INVALID_INPUT, "New password is required")
        moment = now or utcnow()
        try:
            account = await asyncio.to_thread(self.store.find_by_id, account_id)
            if account is None:
                return Outcome.fail(OutcomeKind.NOT_FOUND)
            if not await self.hasher.verify_async(current_password, account.password_hash):
                return Outcome.fail(OutcomeKind.INVALID_CURRENT_PASSWORD)
            new_hash = await self.hasher.hash_async(new_password)
            updated = await asyncio.to_thread(
                self.store.update, account_id, {"password_hash": new_hash, "force_password_change": False}
            )
            profile = AccountProfile.from_account(updated)
        except Exception:
            logger.exception("Password change failed for account %s", account_id)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        await self._audit(account_id, AuditAction.PASSWORD_CHANGE, "Password changed successfully", moment)
        return Outcome.ok(account=profile)

    async def reset_password(
        self,
        account_id: str,
        actor: AuthSession | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        temp_password = generate_temp_password()
        try:
            if await asyncio.to_thread(self.store.find_by_id, account_id) is None:
                return Outcome.fail(OutcomeKind.NOT_FOUND)
            hashed = await self.hasher.hash_async(temp_password)
            updated = await asyncio.to_thread(
                self.store.update,
                account_id,
                {
                    "password_hash": hashed,
                    "force_password_change": True,
                    "failed_login_attempts": 0,
                    "locked_until": None,
                },
            )
            profile = AccountProfile.from_account(updated)
        except Exception:
            logger.exception("Password reset failed for account %s", account_id)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        await self._audit(_actor_id(actor), AuditAction.PASSWORD_RESET, f"Reset password for user: {account_id}", moment)
        return Outcome.ok(account=profile, temp_password=temp_password)

    async def create_account(
        self,
        data: NewAccount,
        actor: AuthSession | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        if data.role not in ROLES:
            return Outcome.fail(OutcomeKind.INVALID_INPUT, f"Unknown role: {data.role}")
        if not data.user_id or not data.name.strip() or not data.email.strip():
            return Outcome.fail(OutcomeKind.INVALID_INPUT, "User ID, name and email are required")
        moment = now or utcnow()
        temp_password = generate_temp_password()
        try:
            hashed = await self.hasher.hash_async(temp_password)
            values = asdict(data)
            values.update(
                password_hash=hashed,
                is_active=True,
                force_password_change=True,
                failed_login_attempts=0,
                created_at=moment,
            )
            created = await asyncio.to_thread(self.store.create, values)
            profile = AccountProfile.from_account(created)
        except DuplicateEmailError:
            return Outcome.fail(OutcomeKind.DUPLICATE_EMAIL)
        except DuplicateIdError:
            return Outcome.fail(OutcomeKind.DUPLICATE_ID)
        except Exception:
            logger.exception("Account creation failed for %s", data.user_id)
            return Outcome.fail(OutcomeKind.SYSTEM_ERROR)
        await self._audit(_actor_id(actor), AuditAction.USER_CREATE, f"Created new {data.role}: {data.name}", moment)
        return Outcome.ok(account=profile, temp_password=temp_password)

    async def logout(self, session: AuthSession, now: datetime | None = None) -> None:
        await self._audit(session.user_id, AuditAction.LOGOUT, "User logged out", now or utcnow())

    def verify_session(self, token: str) -> AuthSession | None:
        try:
            claims = self.tokens.verify(token)
        except TokenError as exc:
            logger.info("Rejected session token: %s", exc)
            return None
        try:
            account = self.store.find_by_id(str(claims["sub"]))
        except Exception:
            logger.exception("Account lookup failed while verifying session")
            return None
        if account is None or not account.is_active:
            return None
        return AuthSession(profile=AccountProfile.from_account(account), token=token)

    async def _audit(
        self,
        actor_id: str | None,
        action: AuditAction,
        detail: str,
        moment: datetime,
        ctx: RequestContext | None = None,
    ) -> None:
        ctx = ctx or RequestContext()
        try:
            await asyncio.to_thread(
                self.audit.record,
                actor_id,
                action,
                detail,
                timestamp=moment,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
            )
        except Exception:
            logger.exception("Audit sink failed for action=%s", action.value)


def _actor_id(actor: AuthSession | None) -> str | None:
    return actor.user_id if actor else None


def build_account_guard(settings: Settings, session: Session, hasher: PasswordHasher | None = None) -> AccountGuard:
    return AccountGuard(
        AccountStore(session),
        AuditLogger(session),
        TokenService(settings.jwt_secret, ttl_seconds=settings.session_ttl_seconds),
        hasher=hasher,
        max_failed_attempts=settings.max_failed_attempts,
        lockout_minutes=settings.lockout_minutes,
    )
