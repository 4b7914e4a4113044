from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

logger = logging.getLogger("studyq.security")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"studyq.{name}")


def log_security_event(
    user_id: str | None,
    event: str,
    reason: str,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "user_id": user_id,
        "event": event,
        "reason": reason,
        "metadata": dict(metadata) if metadata else {},
    }
    logger.warning(json.dumps(entry, default=str))
