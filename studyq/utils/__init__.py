from .timeutils import as_utc, utcnow

__all__ = ["as_utc", "utcnow"]
