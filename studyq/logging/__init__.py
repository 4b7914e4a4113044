from .audit import AuditAction, AuditLogger
from .logger import get_logger, log_security_event

__all__ = ["AuditAction", "AuditLogger", "get_logger", "log_security_event"]
