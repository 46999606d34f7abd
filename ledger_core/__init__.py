# =============================================================================
# ledger_core/__init__.py
# Installment Ledger - core package
# =============================================================================

__version__ = "1.0.0"
