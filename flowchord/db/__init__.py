"""Database package."""
from flowchord.db.database import (
    Base,
    create_engine,
    create_session_factory,
    dispose_engine,
    get_db,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "get_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
