from .notifications import ConfigurationStatus, CredentialNotifier, NotificationResult
from .users import UserAdminService, UserFilters, generate_user_id

__all__ = [
    "ConfigurationStatus",
    "CredentialNotifier",
    "NotificationResult",
    "UserAdminService",
    "UserFilters",
    "generate_user_id",
]
