"""Database engine, session factory, and declarative base.

Every lineage table carries a `tenant_id` column; all queries issued by
the SQL lineage store are filtered on it.

Session dependencies for FastAPI:
  - get_lineage_store()  → the LineageStore used by routers and services
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Base class ──────────────────────────────────────────────

class TenantBase(DeclarativeBase):
    """Models whose rows belong to exactly one tenant."""
    pass


# ── Session dependencies ────────────────────────────────────

_store = None


def get_lineage_store():
    """Return the process-wide SQL-backed lineage store.

    Tests override this dependency with an InMemoryLineageStore.
    """
    global _store
    if _store is None:
        from app.lineage.sql_store import SqlLineageStore  # deferred to avoid circular

        _store = SqlLineageStore(async_session)
    return _store
