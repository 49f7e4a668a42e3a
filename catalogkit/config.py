"""
Runtime configuration for catalogkit.

Settings come from environment variables, optionally loaded from a .env file
with python-dotenv. Database variables use the SUPABASE_DB_* names the
Supabase client already understands.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

# Arbitrary but fixed: every engine instance must agree on the advisory lock key
DEFAULT_LEDGER_LOCK_KEY = 727274

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 100


@dataclass
class Settings:
    """Resolved configuration values."""
    db_url: Optional[str] = None
    pool_min: int = 1
    pool_max: int = 10
    ledger_lock_key: int = DEFAULT_LEDGER_LOCK_KEY
    history_limit: int = DEFAULT_HISTORY_LIMIT
    history_max_limit: int = MAX_HISTORY_LIMIT
    log_level: str = "INFO"

    def clamp_history_limit(self, limit: Optional[int]) -> int:
        """Apply the default and the upper bound to a requested listing size."""
        if limit is None or limit <= 0:
            limit = self.history_limit
        return min(limit, self.history_max_limit)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def _db_url_from_env() -> Optional[str]:
    db_url = os.getenv("SUPABASE_DB_URL")
    if db_url and db_url.strip():
        return db_url.strip()

    host = os.getenv("SUPABASE_DB_HOST")
    password = os.getenv("SUPABASE_DB_PASSWORD")
    if not (host and password):
        return None

    port = os.getenv("SUPABASE_DB_PORT", "5432")
    database = os.getenv("SUPABASE_DB_NAME", "postgres")
    user = os.getenv("SUPABASE_DB_USER", "postgres")
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from the environment.

    Args:
        env_file: Optional .env path. Variables already set in the process
                  environment take precedence over the file.

    Returns:
        Settings instance
    """
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)
    else:
        load_dotenv()

    settings = Settings(
        db_url=_db_url_from_env(),
        pool_min=_int_env("CATALOGKIT_POOL_MIN", 1),
        pool_max=_int_env("CATALOGKIT_POOL_MAX", 10),
        ledger_lock_key=_int_env("CATALOGKIT_LEDGER_LOCK_KEY", DEFAULT_LEDGER_LOCK_KEY),
        history_limit=_int_env("CATALOGKIT_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT),
        history_max_limit=_int_env("CATALOGKIT_HISTORY_MAX_LIMIT", MAX_HISTORY_LIMIT),
        log_level=os.getenv("CATALOGKIT_LOG_LEVEL", "INFO").upper(),
    )

    if settings.pool_min > settings.pool_max:
        raise ValueError(
            f"CATALOGKIT_POOL_MIN ({settings.pool_min}) cannot exceed "
            f"CATALOGKIT_POOL_MAX ({settings.pool_max})"
        )

    return settings


def configure_logging(settings: Settings) -> None:
    """Install a root handler at the configured level."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
