from .accounts import (
    AccountConflictError,
    AccountNotFoundError,
    AccountStore,
    AccountStoreError,
    DuplicateEmailError,
    DuplicateIdError,
)

__all__ = [
    "AccountConflictError",
    "AccountNotFoundError",
    "AccountStore",
    "AccountStoreError",
    "DuplicateEmailError",
    "DuplicateIdError",
]
