from __future__ import annotations

import os
import tempfile
import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from studyq.auth import PasswordHasher
from studyq.config import Settings
from studyq.main import create_app
from studyq.models import Account, Base

PASSWORD = "Stud3nt#Pass"


class AuthApiTests(unittest.TestCase):
    def setUp(self) -> None:
        fd, self.db_path = tempfile.mkstemp(prefix="auth_api", suffix=".db")
        os.close(fd)
        url = f"sqlite+pysqlite:///{self.db_path}"
        self.engine = create_engine(url, future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, future=True)
        hasher = PasswordHasher()
        with self.Session() as db:
            db.add(
                Account(
                    user_id="STD-000010-CCC",
                    name="riley",
                    email="riley@example.com",
                    role="student",
                    password_hash=hasher.hash(PASSWORD),
                    is_active=True,
                    force_password_change=False,
                    failed_login_attempts=0,
                )
            )
            db.commit()
        settings = Settings(database_url=url, jwt_secret="test-jwt", app_env="test", max_failed_attempts=2)
        self.client = TestClient(create_app(settings, hasher=hasher))

    def tearDown(self) -> None:
        self.client.close()
        self.engine.dispose()
        os.remove(self.db_path)

    def _login(self, password: str = PASSWORD):
        return self.client.post("/api/auth/login", json={"username": "riley", "password": password})

    def test_health(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_login_and_me(self) -> None:
        resp = self._login()
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["expires_in"], 7200)
        self.assertEqual(body["user"]["user_id"], "STD-000010-CCC")
        headers = {"Authorization": f"Bearer {body['token']}"}
        me = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["role"], "student")

    def test_me_rejects_missing_or_bad_token(self) -> None:
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        resp = self.client.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["detail"], "invalid_token")

    def test_lockout_status_codes(self) -> None:
        first = self._login("wrong")
        self.assertEqual(first.status_code, 401)
        self.assertEqual(first.json()["detail"]["error"], "INVALID_CREDENTIALS")
        self.assertEqual(self._login("wrong").status_code, 401)
        locked = self._login()
        self.assertEqual(locked.status_code, 423)
        self.assertEqual(locked.json()["detail"]["error"], "ACCOUNT_LOCKED")

    def test_change_password_and_logout(self) -> None:
        token = self._login().json()["token"]
        headers = {"Authorization": f"Bearer {token}"}
        bad = self.client.post(
            "/api/auth/change-password",
            json={"current_password": "nope", "new_password": "N3w#Pass"},
            headers=headers,
        )
        self.assertEqual(bad.status_code, 400)
        empty = self.client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": ""},
            headers=headers,
        )
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.json()["detail"]["error"], "INVALID_INPUT")
        good = self.client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "N3w#Pass"},
            headers=headers,
        )
        self.assertEqual(good.status_code, 200)
        self.assertEqual(self.client.post("/api/auth/logout", headers=headers).json(), {"status": "ok"})
        self.assertEqual(self._login("N3w#Pass").status_code, 200)


if __name__ == "__main__":
    unittest.main()
