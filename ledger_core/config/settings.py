# =============================================================================
# ledger_core/config/settings.py
# Application Settings (secrets.toml + environment)
# =============================================================================
"""
Settings loader for the Installment Ledger.

Resolution order (later wins):
1. Dataclass defaults
2. .streamlit/secrets.toml

       [supabase]
       url = "https://your-project.supabase.co"
       key = "your-anon-key"

       [ledger]
       db_path = "local_data/ledger.db"
       sync_interval = 30
       change_log_retention_days = 90

3. Environment variables (SUPABASE_URL, SUPABASE_KEY, LEDGER_DB_PATH,
   LEDGER_LOG_LEVEL, LEDGER_SYNC_INTERVAL)
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import logging

import toml

from ledger_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_SECRETS_PATH = PROJECT_ROOT / ".streamlit" / "secrets.toml"
DEFAULT_DB_PATH = PROJECT_ROOT / "local_data" / "ledger.db"

# env var -> settings field
ENV_OVERRIDES = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "LEDGER_DB_PATH": "db_path",
    "LEDGER_LOG_LEVEL": "log_level",
    "LEDGER_SYNC_INTERVAL": "sync_interval",
}


@dataclass
class AppSettings:
    """Runtime configuration shared by every ledger component."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    db_path: Path = DEFAULT_DB_PATH
    check_interval_online: int = 30
    check_interval_offline: int = 10
    connection_timeout: int = 5
    sync_interval: int = 30
    change_log_retention_days: Optional[int] = None
    auto_sync: bool = True
    log_level: str = "INFO"

    @property
    def remote_configured(self) -> bool:
        """True when both Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)


def _coerce(name: str, value: Any) -> Any:
    """Convert raw TOML/env values to the field's expected type."""
    if value is None or value == "":
        return None if name in ("supabase_url", "supabase_key", "change_log_retention_days") else value

    if name == "db_path":
        return Path(value).expanduser()

    if name in (
        "check_interval_online",
        "check_interval_offline",
        "connection_timeout",
        "sync_interval",
        "change_log_retention_days",
    ):
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Setting '{name}' must be an integer",
                config_key=name,
                expected_type="int",
            )
        if number < 0:
            raise ConfigurationError(
                f"Setting '{name}' must not be negative",
                config_key=name,
                expected_type="int >= 0",
            )
        return number

    if name == "auto_sync":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")

    return str(value)


def load_settings(
    secrets_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppSettings:
    """
    Build AppSettings from secrets.toml and environment variables.

    Args:
        secrets_path: Path to a secrets.toml file (default: .streamlit/secrets.toml)
        environ: Environment mapping (default: os.environ)

    Returns:
        Populated AppSettings
    """
    environ = os.environ if environ is None else environ
    secrets_path = secrets_path or DEFAULT_SECRETS_PATH
    values: Dict[str, Any] = {}

    if secrets_path.exists():
        try:
            secrets = toml.load(secrets_path)
        except toml.TomlDecodeError as e:
            raise ConfigurationError(
                f"Could not parse {secrets_path}: {e}",
                config_key="secrets.toml",
            )

        supabase = secrets.get("supabase", {})
        if "url" in supabase:
            values["supabase_url"] = supabase["url"]
        if "key" in supabase:
            values["supabase_key"] = supabase["key"]

        known = {f.name for f in fields(AppSettings)}
        for key, value in secrets.get("ledger", {}).items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown [ledger] setting: {key}")
    else:
        logger.debug(f"No secrets file at {secrets_path}, using defaults")

    for env_key, field_name in ENV_OVERRIDES.items():
        if environ.get(env_key):
            values[field_name] = environ[env_key]

    settings = AppSettings(**{k: _coerce(k, v) for k, v in values.items()})

    if not settings.remote_configured:
        logger.info("Supabase credentials not set - running in local-only mode")

    return settings
