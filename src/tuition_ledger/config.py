"""Runtime configuration for the ledger, resolved from the environment."""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from .accounting.models import PaymentMethod
from .accounting.reports import DEFAULT_CRITICAL_DAYS

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./ledger.db"
DEFAULT_FALLBACK_METHOD = PaymentMethod.TRANSFER
DEFAULT_REQUEST_TIMEOUT = 15.0


def get_database_url() -> str:
    """Get the database URL from the environment.

    Postgres URLs are rewritten to use the asyncpg driver. Falls back to a
    local SQLite file for development.
    """
    db_url = os.getenv("DATABASE_URL")
    if db_url:
        if db_url.startswith("postgresql://"):
            db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif db_url.startswith("postgres://"):
            db_url = db_url.replace("postgres://", "postgresql+asyncpg://", 1)
        return db_url
    return DEFAULT_DATABASE_URL


@dataclass
class LedgerSettings:
    """Configuration values passed explicitly into the ledger entry points."""
    remote_url: Optional[str] = None
    database_url: str = DEFAULT_DATABASE_URL
    fallback_method: PaymentMethod = DEFAULT_FALLBACK_METHOD
    critical_days: int = DEFAULT_CRITICAL_DAYS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    master_cedula: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        """Build settings from environment variables.

        Unknown fallback methods and malformed numbers are logged and replaced
        by the defaults.
        """
        fallback = DEFAULT_FALLBACK_METHOD
        raw_fallback = os.getenv("LEDGER_FALLBACK_METHOD")
        if raw_fallback:
            try:
                fallback = PaymentMethod(raw_fallback)
            except ValueError:
                logger.warning(
                    f"Unknown LEDGER_FALLBACK_METHOD {raw_fallback!r}, "
                    f"using {DEFAULT_FALLBACK_METHOD.value}"
                )

        return cls(
            remote_url=os.getenv("LEDGER_REMOTE_URL") or None,
            database_url=get_database_url(),
            fallback_method=fallback,
            critical_days=_int_from_env("LEDGER_CRITICAL_DAYS", DEFAULT_CRITICAL_DAYS),
            request_timeout=_float_from_env("LEDGER_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            master_cedula=os.getenv("LEDGER_MASTER_CEDULA") or None,
        )


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}")
        return default


def _float_from_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {raw!r}")
        return default
