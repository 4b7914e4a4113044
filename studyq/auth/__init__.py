from .guard import AccountGuard, NewAccount, RequestContext, build_account_guard
from .outcomes import HTTP_STATUS, AccountProfile, AuthSession, Outcome, OutcomeKind
from .passwords import PasswordHasher, generate_temp_password
from .tokens import TokenError, TokenService

__all__ = [
    "HTTP_STATUS",
    "AccountGuard",
    "AccountProfile",
    "AuthSession",
    "NewAccount",
    "Outcome",
    "OutcomeKind",
    "PasswordHasher",
    "RequestContext",
    "TokenError",
    "TokenService",
    "build_account_guard",
    "generate_temp_password",
]
