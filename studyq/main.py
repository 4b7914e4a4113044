from __future__ import annotations

import asyncio

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from studyq.auth import (
    HTTP_STATUS,
    AccountGuard,
    AuthSession,
    Outcome,
    PasswordHasher,
    RequestContext,
    build_account_guard,
)
from studyq.config import Settings, load_settings
from studyq.models import Base, build_engine


class LoginRequest(BaseModel):
    username: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


def _raise_for(outcome: Outcome) -> None:
    if not outcome.success:
        raise HTTPException(
            status_code=HTTP_STATUS[outcome.kind],
            detail={"error": outcome.kind.value, "message": outcome.message},
        )


def create_app(settings: Settings | None = None, hasher: PasswordHasher | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="StudyQ Accounts API", version="0.1.0")
    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    SessionLocal = sessionmaker(bind=app.state.engine, expire_on_commit=False, future=True)
    Base.metadata.create_all(app.state.engine)
    password_hasher = hasher or PasswordHasher()
    bearer = HTTPBearer(auto_error=False)

    async def get_guard():
        db = SessionLocal()
        try:
            yield build_account_guard(settings, db, hasher=password_hasher)
        finally:
            db.close()

    async def current_session(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
        guard: AccountGuard = Depends(get_guard),
    ) -> AuthSession:
        if credentials is None:
            raise HTTPException(status_code=401, detail="not_authenticated")
        auth = await asyncio.to_thread(guard.verify_session, credentials.credentials)
        if auth is None:
            raise HTTPException(status_code=401, detail="invalid_token")
        return auth

    @app.get("/health")
    def health():
        try:
            with app.state.engine.connect() as connection:
                connection.execute(text("select 1"))
        except Exception as exc:
            raise HTTPException(status_code=503, detail="database_unavailable") from exc
        return {"status": "ok"}

    @app.post("/api/auth/login")
    async def login(body: LoginRequest, request: Request, guard: AccountGuard = Depends(get_guard)):
        context = RequestContext(
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        outcome = await guard.attempt_login(body.username, body.password, context=context)
        _raise_for(outcome)
        return {
            "user": outcome.account.to_dict(),
            "token": outcome.token,
            "expires_in": settings.session_ttl_seconds,
        }

    @app.get("/api/auth/me")
    async def me(auth: AuthSession = Depends(current_session)):
        return {"user": auth.profile.to_dict()}

    @app.post("/api/auth/logout")
    async def logout(auth: AuthSession = Depends(current_session), guard: AccountGuard = Depends(get_guard)):
        await guard.logout(auth)
        return {"status": "ok"}

    @app.post("/api/auth/change-password")
    async def change_password(
        body: ChangePasswordRequest,
        auth: AuthSession = Depends(current_session),
        guard: AccountGuard = Depends(get_guard),
    ):
        outcome = await guard.change_password(auth.user_id, body.current_password, body.new_password)
        _raise_for(outcome)
        return {"user": outcome.account.to_dict()}

    return app
