# =============================================================================
# ledger_core/config/__init__.py
# =============================================================================

from .settings import AppSettings, load_settings

__all__ = ["AppSettings", "load_settings"]
