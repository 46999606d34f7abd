# =============================================================================
# ledger_core/services/base_service.py
# Shared Plumbing for Read-side Services
# =============================================================================

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ledger_core.errors import LedgerError, handle_error
from ledger_core.logging import LogContext, get_logger


@dataclass
class ServiceResult:
    """
    Outcome of a service call. Truthy on success.

    ``data`` holds the payload (usually a DataFrame or dict); on failure
    ``error``/``error_code`` describe what went wrong and ``details``
    carries the LedgerError context.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None) -> ServiceResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, error_code: str = "UNKNOWN", **details: Any) -> ServiceResult:
        return cls(success=False, error=error, error_code=error_code, details=details)

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        if isinstance(e, LedgerError):
            return cls.fail(e.message, e.code, **e.details)
        return cls.fail(str(e), "EXCEPTION")

    def unwrap(self, default: Any = None) -> Any:
        """The payload, or ``default`` when the call failed."""
        return self.data if self.success else default


class BaseService(ABC):
    """
    Base for services that only read through UnifiedDataService, so they
    behave the same online and offline.

    Subclasses put the work in a private method and expose it through
    safe_execute():

        def risk_summary(self, profile_id):
            return self.safe_execute("Risk summary", self._risk_summary, profile_id)
    """

    def __init__(self, data_service):
        self.data = data_service
        self.logger = get_logger(f"ledger_core.services.{type(self).__name__}")

    def log_operation(self, operation: str) -> LogContext:
        """Timed log context named after the operation."""
        return LogContext(self.logger, operation)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Run ``func`` inside a LogContext and wrap the outcome.

        LedgerErrors go through handle_error(); anything else is logged with
        its traceback. Neither escapes.
        """
        try:
            with self.log_operation(operation):
                return ServiceResult.ok(func(*args, **kwargs))
        except LedgerError as e:
            handle_error(e)
            return ServiceResult.from_exception(e)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}", exc_info=True)
            return ServiceResult.from_exception(e)
