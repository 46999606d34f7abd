# =============================================================================
# ledger_core/data/__init__.py
# Remote Data Access
# =============================================================================

from .supabase_client import SupabaseRemote, create_supabase_client

__all__ = [
    "SupabaseRemote",
    "create_supabase_client",
]
