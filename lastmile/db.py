# lastmile/db.py
from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from lastmile.core.settings import settings


class Base(DeclarativeBase):
    pass


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    # pysqlite/aiosqlite begint zelf transacties en breekt daarmee SAVEPOINT;
    # we nemen BEGIN over zodat begin_nested() per tier werkt.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    # sqlite_immediate: schrijver pakt de write-lock bij BEGIN en wacht dan op
    # de busy timeout, in plaats van halverwege met "database is locked" te falen
    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get("sqlite_immediate"):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def make_engine(url: str | None = None, *, echo: bool | None = None, **engine_kwargs) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    engine = create_async_engine(
        url,
        echo=settings.DATABASE_ECHO if echo is None else echo,
        **engine_kwargs,
    )
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)


async def create_all(bind: AsyncEngine | None = None) -> None:
    # zorg dat modellen geladen zijn, anders kent Base de tabellen niet
    from lastmile import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
