"""Database package.

Provides the async engine, session factory and FastAPI session dependency.
"""

from juris.db.session import async_session, engine, get_db

__all__ = [
    "async_session",
    "engine",
    "get_db",
]
