"""Environment-backed settings for the account and admin services."""

from .settings import REQUIRED_ENV_VARS, Settings, load_settings

__all__ = ["REQUIRED_ENV_VARS", "Settings", "load_settings"]
