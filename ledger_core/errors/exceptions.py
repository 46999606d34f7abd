# =============================================================================
# ledger_core/errors/exceptions.py
# Exception Hierarchy for the Installment Ledger
# =============================================================================
"""
Every error raised by ledger_core derives from LedgerError.

Subclasses only declare their code and whether the failure is recoverable;
keyword context passed at the raise site (table=, field=, entry_id=, ...)
lands in ``details`` with None values dropped:

    raise ValidationError("amount must be a number", field="amount", value=raw)
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """
    Base exception for the ledger.

    Attributes:
        message: Text shown to the user
        code: Stable code for logs and UI (e.g. "REMOTE_001")
        details: Structured context from the raise site
        recoverable: False when the current operation cannot continue
    """

    code = "LEDGER_000"
    recoverable = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable
        self.details = dict(details or {})
        self.details.update({k: v for k, v in context.items() if v is not None})

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code}] {self.message}"
        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"[{self.code}] {self.message} ({context})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# INPUT & LOCAL STORE
# =============================================================================

class ValidationError(LedgerError):
    """Bad input, or a table/column name outside the ledger schema"""
    code = "DATA_001"


class LocalStoreError(LedgerError):
    """The SQLite mirror failed; there is no further fallback"""
    code = "STORE_001"
    recoverable = False


# =============================================================================
# REMOTE STORE
# =============================================================================

class RemoteError(LedgerError):
    """Any failure reported by SupabaseRemote"""
    code = "REMOTE_000"


class RemoteUnavailableError(RemoteError):
    """Supabase could not be reached (DNS, refused, timeout)"""
    code = "REMOTE_001"


class RemoteOperationError(RemoteError):
    """Supabase answered but rejected the request"""
    code = "REMOTE_002"


class RemoteNotConfiguredError(RemoteError):
    """No Supabase credentials, so there is no client to call"""
    code = "CONFIG_002"
    recoverable = False

    def __init__(self, message: str = "Supabase isn't configured", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# SYNC & CONFIGURATION
# =============================================================================

class SyncError(LedgerError):
    """A change log entry has no way to be replayed"""
    code = "SYNC_001"


class ConfigurationError(LedgerError):
    """secrets.toml or an environment override holds an invalid value"""
    code = "CONFIG_001"
    recoverable = False
