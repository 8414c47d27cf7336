"""Database module for ledger persistence."""

from .models import (
    Base,
    FeeRow,
    PaymentRow,
    RepresentativeRow,
    StatusChange,
    StudentRow,
    UserRow,
)
from .session import (
    get_db,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    get_db_context,
    DatabaseManager,
)
from .repository import LedgerRepository

__all__ = [
    # Models
    "Base",
    "FeeRow",
    "PaymentRow",
    "RepresentativeRow",
    "StatusChange",
    "StudentRow",
    "UserRow",
    # Session management
    "get_db",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "get_db_context",
    "DatabaseManager",
    # Repositories
    "LedgerRepository",
]
