"""Declarative base and the process-wide async engine.

The gateway owns a single engine per process. ``init_db`` is called from the
app lifespan with the injected settings; webhook handlers and probes open
short-lived sessions from ``get_session_factory``.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(database_url: str, echo: bool) -> dict:
    options: dict = {"echo": echo}
    # SQLite (tests, local runs) has no server connections to ping
    if not database_url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    return options


async def init_db(database_url: str, *, echo: bool = False) -> None:
    """Create the engine for ``database_url`` and the tables it is missing.

    A second call while an engine is live is a no-op.
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    _engine = create_async_engine(database_url, **_engine_options(database_url, echo))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    import gateway.db.models  # noqa: F401  (registers tables on Base.metadata)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return _session_factory
