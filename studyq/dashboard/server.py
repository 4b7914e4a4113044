from __future__ import annotations

import asyncio
from functools import wraps
from typing import Any, Awaitable, Callable, Mapping

from flask import Flask, g, jsonify, redirect, render_template, request, session, url_for
from flask_wtf.csrf import CSRFProtect, generate_csrf
from sqlalchemy.orm import Session, sessionmaker

from studyq.auth import (
    HTTP_STATUS,
    AuthSession,
    Outcome,
    OutcomeKind,
    PasswordHasher,
    RequestContext,
    build_account_guard,
)
from studyq.config import Settings, load_settings
from studyq.logging import get_logger, log_security_event
from studyq.models import ROLES, Base, build_engine
from studyq.services import CredentialNotifier, UserAdminService, UserFilters

logger = get_logger("dashboard")

NotifierFactory = Callable[[], "CredentialNotifier | None"]


def _serialize_outcome(outcome: Outcome) -> tuple[Mapping[str, Any], int]:
    if not outcome.success:
        return {"error": outcome.kind.value, "message": outcome.message}, HTTP_STATUS[outcome.kind]
    payload: dict[str, Any] = {}
    if outcome.account is not None:
        payload["user"] = outcome.account.to_dict()
    if outcome.temp_password is not None:
        payload["temp_password"] = outcome.temp_password
        payload["email_sent"] = outcome.notified
    return payload, 200


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    return int(value)


def _parse_bool(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "active"):
        return True
    if lowered in ("0", "false", "no", "inactive"):
        return False
    raise ValueError("expected a boolean")


def _request_context() -> RequestContext:
    return RequestContext(ip_address=request.remote_addr, user_agent=request.headers.get("User-Agent"))


def create_admin_app(
    settings: Settings | None = None,
    notifier_factory: NotifierFactory | None = None,
    hasher: PasswordHasher | None = None,
) -> Flask:
    settings = settings or load_settings()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = settings.app_env not in ("test", "development")
    app.config["SESSION_COOKIE_SAMESITE"] = "Strict"
    app.config["PERMANENT_SESSION_LIFETIME"] = settings.session_ttl_seconds
    app.config["WTF_CSRF_ENABLED"] = settings.app_env != "test"
    app.secret_key = settings.dashboard_session_secret or settings.jwt_secret

    engine = build_engine(settings.database_url)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    Base.metadata.create_all(engine)
    csrf = CSRFProtect(app)
    password_hasher = hasher or PasswordHasher()

    def default_notifier() -> CredentialNotifier | None:
        return CredentialNotifier.from_settings(settings)

    make_notifier = notifier_factory or default_notifier
    app.config["NOTIFIER_FACTORY"] = make_notifier

    def get_session() -> Session:
        return SessionLocal()

    def run_service(action: Callable[[UserAdminService], Awaitable[Any]]) -> Any:
        # Each request gets its own event loop, so the http client inside the
        # notifier must be created and closed within it.
        async def runner() -> Any:
            db = get_session()
            notifier = make_notifier()
            try:
                guard = build_account_guard(settings, db, hasher=password_hasher)
                return await action(UserAdminService(guard, notifier))
            finally:
                if notifier is not None:
                    await notifier.aclose()
                db.close()

        return asyncio.run(runner())

    def load_actor() -> AuthSession | None:
        token = session.get("auth_token")
        if not token:
            return None
        db = get_session()
        try:
            return build_account_guard(settings, db, hasher=password_hasher).verify_session(token)
        finally:
            db.close()

    def require_login(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = load_actor()
            if actor is None or not actor.is_admin:
                session.clear()
                return redirect(url_for("login"))
            g.actor = actor
            return fn(*args, **kwargs)

        return wrapper

    def require_auth(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = load_actor()
            if actor is None or not actor.is_admin:
                session.clear()
                return redirect(url_for("login"))
            if actor.profile.force_password_change:
                return redirect(url_for("change_password"))
            g.actor = actor
            return fn(*args, **kwargs)

        return wrapper

    def require_admin(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = load_actor()
            if actor is None:
                return jsonify({"error": "unauthorized"}), 401
            if not actor.is_admin:
                return jsonify({"error": "forbidden"}), 403
            if actor.profile.force_password_change:
                return jsonify({"error": "password_change_required"}), 403
            g.actor = actor
            return fn(*args, **kwargs)

        return wrapper

    @app.route("/")
    @require_auth
    def index():
        return render_template("users.html", actor=g.actor.profile, roles=ROLES)

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "GET":
            return render_template("login.html", error=None)
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        context = _request_context()

        async def attempt(service: UserAdminService) -> Outcome:
            return await service.guard.attempt_login(username, password, context=context)

        outcome = run_service(attempt)
        if not outcome.success:
            return render_template("login.html", error=outcome.message), HTTP_STATUS[outcome.kind]
        if outcome.account is None or outcome.account.role != "admin":
            log_security_event(
                outcome.account.user_id if outcome.account else None,
                "admin_console_refused",
                "account is not an administrator",
                {"ip_address": context.ip_address},
            )
            return render_template("login.html", error="Administrator access required"), 403
        session.clear()
        session["auth_token"] = outcome.token
        session["user_id"] = outcome.account.user_id
        session.permanent = True
        if outcome.account.force_password_change:
            return redirect(url_for("change_password"))
        return redirect(url_for("index"))

    @app.route("/logout")
    def logout():
        actor = load_actor()
        if actor is not None:

            async def sign_out(service: UserAdminService) -> None:
                await service.guard.logout(actor)

            run_service(sign_out)
        session.clear()
        return redirect(url_for("login"))

    @app.route("/change-password", methods=["GET", "POST"])
    @require_login
    def change_password():
        forced = g.actor.profile.force_password_change
        if request.method == "GET":
            return render_template("change_password.html", error=None, forced=forced)
        current_password = request.form.get("current_password", "")
        new_password = request.form.get("new_password", "")
        confirm_password = request.form.get("confirm_password", "")
        if not new_password or new_password != confirm_password:
            return render_template("change_password.html", error="New passwords do not match", forced=forced), 400
        user_id = g.actor.user_id

        async def change(service: UserAdminService) -> Outcome:
            return await service.guard.change_password(user_id, current_password, new_password)

        outcome = run_service(change)
        if not outcome.success:
            return render_template("change_password.html", error=outcome.message, forced=forced), HTTP_STATUS[outcome.kind]
        return redirect(url_for("index"))

    @app.after_request
    def after_request(response):
        if settings.app_env != "test":
            response.set_cookie(
                "XSRF-TOKEN",
                generate_csrf(),
                secure=settings.app_env != "development",
                httponly=False,
                samesite="Strict",
            )
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.route("/api/admin/users", methods=["GET"])
    @require_admin
    def list_users():
        try:
            filters = UserFilters(
                role=request.args.get("role") or None,
                is_active=_parse_bool(request.args.get("is_active")),
                search=request.args.get("search") or None,
            )
        except ValueError:
            return jsonify({"error": "invalid_filter"}), 400

        async def fetch(service: UserAdminService):
            return service.list_users(filters)

        try:
            users = run_service(fetch)
        except Exception:
            logger.exception("Listing users failed")
            return jsonify({"error": OutcomeKind.SYSTEM_ERROR.value, "message": "Failed to fetch users"}), 500
        return jsonify([profile.to_dict() for profile in users])

    @app.route("/api/admin/users", methods=["POST"])
    @require_admin
    def create_user():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "invalid_payload"}), 400
        actor = g.actor
        try:
            name = str(data.get("name", ""))
            email = str(data.get("email", ""))
            role = str(data.get("role", ""))
            whatsapp_number = data.get("whatsapp_number") or None
            academic_year = _optional_int(data.get("academic_year"))
            current_semester = _optional_int(data.get("current_semester"))
        except (TypeError, ValueError):
            return jsonify({"error": "invalid_payload"}), 400

        async def create(service: UserAdminService) -> Outcome:
            return await service.create_user(
                name,
                email,
                role,
                whatsapp_number=whatsapp_number,
                academic_year=academic_year,
                current_semester=current_semester,
                actor=actor,
            )

        payload, status = _serialize_outcome(run_service(create))
        return jsonify(payload), 201 if status == 200 else status

    @app.route("/api/admin/users/<user_id>", methods=["PATCH"])
    @require_admin
    def update_user(user_id: str):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "invalid_payload"}), 400
        updates = dict(data)
        try:
            for key in ("academic_year", "current_semester"):
                if key in updates:
                    updates[key] = _optional_int(updates[key])
            if "is_active" in updates and not isinstance(updates["is_active"], bool):
                raise ValueError("is_active must be a boolean")
        except (TypeError, ValueError):
            return jsonify({"error": "invalid_payload"}), 400
        actor = g.actor

        async def update(service: UserAdminService) -> Outcome:
            return service.update_user(user_id, updates, actor=actor)

        payload, status = _serialize_outcome(run_service(update))
        return jsonify(payload), status

    @app.route("/api/admin/users/<user_id>", methods=["DELETE"])
    @require_admin
    def delete_user(user_id: str):
        if user_id == g.actor.user_id:
            return jsonify({"error": "cannot_delete_self"}), 400
        actor = g.actor

        async def delete(service: UserAdminService) -> Outcome:
            return service.delete_user(user_id, actor=actor)

        outcome = run_service(delete)
        if outcome.success:
            return jsonify({"deleted": user_id})
        payload, status = _serialize_outcome(outcome)
        return jsonify(payload), status

    @app.route("/api/admin/users/<user_id>/reset-password", methods=["POST"])
    @require_admin
    def reset_password(user_id: str):
        actor = g.actor

        async def reset(service: UserAdminService) -> Outcome:
            return await service.reset_password(user_id, actor=actor)

        payload, status = _serialize_outcome(run_service(reset))
        return jsonify(payload), status

    @app.route("/api/admin/users/<user_id>/toggle-status", methods=["POST"])
    @require_admin
    def toggle_status(user_id: str):
        if user_id == g.actor.user_id:
            return jsonify({"error": "cannot_deactivate_self"}), 400
        actor = g.actor

        async def toggle(service: UserAdminService) -> Outcome:
            return service.toggle_status(user_id, actor=actor)

        payload, status = _serialize_outcome(run_service(toggle))
        return jsonify(payload), status

    @app.route("/api/admin/email-status", methods=["GET"])
    @require_admin
    def email_status():
        notifier = make_notifier()
        if notifier is None:
            return jsonify({"is_configured": False, "missing_fields": [], "service_id": None})
        status = notifier.configuration_status()
        return jsonify(
            {
                "is_configured": status.is_configured,
                "missing_fields": status.missing_fields,
                "service_id": status.service_id,
            }
        )

    @app.route("/api/admin/email-status/test", methods=["POST"])
    @require_admin
    def email_test():
        async def send_test(service: UserAdminService):
            if service.notifier is None:
                return None
            return await service.notifier.test_configuration()

        result = run_service(send_test)
        if result is None:
            return jsonify({"success": False, "message": "Email delivery not configured"})
        return jsonify({"success": result.success, "message": result.message})

    return app
