from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from studyq.logging import AuditAction, AuditLogger
from studyq.models import AuditEvent, Base


class AuditLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.session = Session(self.engine)
        self.audit = AuditLogger(self.session)

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()

    def test_record_persists_event(self) -> None:
        moment = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)
        entry = self.audit.record(
            "TCH-123456-ABC",
            AuditAction.LOGIN_SUCCESS,
            "User logged in successfully",
            timestamp=moment,
            ip_address="10.0.0.8",
            user_agent="pytest",
        )
        self.assertIsNotNone(entry)
        stored = self.session.query(AuditEvent).filter_by(id=entry.id).one()
        self.assertEqual(stored.user_id, "TCH-123456-ABC")
        self.assertEqual(stored.action, "LOGIN_SUCCESS")
        self.assertEqual(stored.details, {"message": "User logged in successfully"})
        self.assertEqual(stored.ip_address, "10.0.0.8")
        self.assertEqual(stored.created_at.replace(tzinfo=timezone.utc), moment)

    def test_record_without_actor(self) -> None:
        entry = self.audit.record(None, AuditAction.LOGIN_FAILED, "Failed login attempt for username: ghost")
        stored = self.session.query(AuditEvent).filter_by(id=entry.id).one()
        self.assertIsNone(stored.user_id)
        self.assertEqual(stored.action, "LOGIN_FAILED")

    def test_record_emits_json_log_line(self) -> None:
        with self.assertLogs("studyq.audit", level="INFO") as captured:
            self.audit.record("ADM-000001-XYZ", AuditAction.PASSWORD_RESET, "Reset password for user: STD-1")
        self.assertTrue(any('"action": "PASSWORD_RESET"' in line for line in captured.output))

    def test_record_failure_is_swallowed(self) -> None:
        session = MagicMock()
        session.commit.side_effect = OperationalError("insert", {}, Exception("db down"))
        audit = AuditLogger(session)
        with self.assertLogs("studyq.audit", level="ERROR"):
            result = audit.record("STD-1", AuditAction.LOGOUT, "User logged out")
        self.assertIsNone(result)
        session.rollback.assert_called_once()

    def test_events_are_immutable(self) -> None:
        entry = self.audit.record("STD-1", AuditAction.LOGOUT, "User logged out")
        entry.action = "LOGIN_SUCCESS"
        with self.assertRaises(ValueError):
            self.session.commit()
        self.session.rollback()
        with self.assertRaises(ValueError):
            self.session.delete(entry)
            self.session.commit()
        self.session.rollback()


if __name__ == "__main__":
    unittest.main()
