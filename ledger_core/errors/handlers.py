# =============================================================================
# ledger_core/errors/handlers.py
# Reporting Errors to the Log and the UI
# =============================================================================

from __future__ import annotations
from typing import Callable, Optional

from ledger_core.logging import get_logger
from .exceptions import LedgerError

logger = get_logger(__name__)

Notifier = Callable[[str], None]


def user_facing_message(error: Exception, user_message: Optional[str] = None) -> str:
    """Text for the UI; non-recoverable ledger errors are flagged as critical."""
    text = user_message or (error.message if isinstance(error, LedgerError) else str(error))
    if isinstance(error, LedgerError) and not error.recoverable:
        return f"Critical Error: {text}. Please contact support."
    return f"Error: {text}"


def handle_error(
    error: Exception,
    notify: Optional[Notifier] = None,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Log an error with its code and context, then optionally show it.

    Args:
        error: The exception to report
        notify: UI sink for the message (e.g. st.error)
        log_error: Whether to write the error to the log
        user_message: Replaces the exception text in the UI message
    """
    if log_error:
        if isinstance(error, LedgerError):
            logger.error(f"[{error.code}] {error.message}", extra={"details": error.details}, exc_info=error)
        else:
            logger.error(f"[UNEXPECTED] {error}", exc_info=error)

    if notify is not None:
        notify(user_facing_message(error, user_message))


class ErrorContext:
    """
    Wrap a user action so its failure is logged and shown instead of
    crashing the Streamlit script.

    Usage:
        with ErrorContext("Recording payment", notify=st.error):
            service.add_installment(customer_id, amount, day)
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        notify: Optional[Notifier] = None,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.notify = notify
        self.error: Optional[Exception] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"{self.operation}: started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"{self.operation}: done")
            return False
        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        fallback = None if isinstance(exc_val, LedgerError) else f"{self.operation} failed"
        handle_error(exc_val, notify=self.notify, user_message=fallback)
        return self.recoverable

    @property
    def failed(self) -> bool:
        return self.error is not None
