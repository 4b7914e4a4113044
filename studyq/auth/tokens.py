from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

SESSION_TTL_SECONDS = 2 * 60 * 60
ALGORITHM = "HS256"


class TokenError(Exception):
    pass


class TokenService:
    """Signs and verifies session tokens carrying account id and role."""

    def __init__(self, secret: str, ttl_seconds: int = SESSION_TTL_SECONDS) -> None:
        if not secret:
            raise ValueError("Token secret is required")
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, user_id: str, role: str, now: datetime | None = None) -> str:
        moment = now or datetime.now(timezone.utc)
        exp = moment + timedelta(seconds=self.ttl_seconds)
        payload = {"sub": user_id, "role": role, "iat": moment, "exp": exp}
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "role", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("token_expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenError("invalid_token") from exc
        return payload
