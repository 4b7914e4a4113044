from .account import ROLES, Account
from .audit import AuditEvent
from .db import Base, build_engine

__all__ = [
	"Account",
	"AuditEvent",
	"Base",
	"ROLES",
	"build_engine",
]
