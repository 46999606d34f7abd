# =============================================================================
# ledger_core/errors/__init__.py
# Centralized Error Handling for the Installment Ledger
# =============================================================================

from .exceptions import (
    LedgerError,
    ValidationError,
    LocalStoreError,
    RemoteError,
    RemoteUnavailableError,
    RemoteOperationError,
    RemoteNotConfiguredError,
    SyncError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    user_facing_message,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "LedgerError",
    "ValidationError",
    "LocalStoreError",
    "RemoteError",
    "RemoteUnavailableError",
    "RemoteOperationError",
    "RemoteNotConfiguredError",
    "SyncError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "user_facing_message",
    "ErrorContext",
]
