from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from .config import get_settings
from .errors import InvalidInputError


class Base(DeclarativeBase):
    pass


def normalize_database_url(url: str) -> str:
    """
    Return an async-driver URL for ``url``.

    Plain ``postgres://`` / ``postgresql://`` strings (what hosting providers
    hand out) are switched to asyncpg; anything else is kept as given.
    Raises InvalidInputError when the string is not a database URL at all.
    """
    if not url or not url.strip():
        raise InvalidInputError("Database URL is required")
    try:
        parsed = make_url(url.strip())
    except ArgumentError as e:
        raise InvalidInputError(f"Invalid database URL: {e}") from e

    if parsed.drivername in ("postgres", "postgresql"):
        parsed = parsed.set(drivername="postgresql+asyncpg")

    if parsed.drivername == "postgresql+asyncpg":
        # asyncpg takes ssl=..., not the libpq-only options
        query = dict(parsed.query)
        sslmode = query.pop("sslmode", None)
        query.pop("channel_binding", None)
        if sslmode and "ssl" not in query:
            query["ssl"] = sslmode
        parsed = parsed.set(query=query)

    return parsed.render_as_string(hide_password=False)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for_url(url: str, pooled: bool = True) -> AsyncEngine:
    """Create an async engine for the shared database or a dedicated tenant database."""
    url = normalize_database_url(url)
    is_sqlite = make_url(url).get_backend_name() == "sqlite"

    if not pooled:
        engine = create_async_engine(url, echo=False, poolclass=NullPool)
    elif is_sqlite:
        engine = create_async_engine(url, echo=False)
    else:
        engine = create_async_engine(
            url,
            echo=False,
            pool_pre_ping=True,  # Verify connections before using them
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_size=10,
            max_overflow=20,
        )

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


async def init_models(bind: AsyncEngine) -> None:
    """Create every table in ``Base.metadata`` on the given engine."""
    from .. import models  # noqa: F401  (registers tables)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


settings = get_settings()
engine = create_engine_for_url(settings.database_url)
AsyncSessionLocal = make_sessionmaker(engine)


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session
