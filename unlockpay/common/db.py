"""Entitlement store engine, session factory and the set-add primitive."""

from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from unlockpay.common.config import settings

INSERT_BUILDERS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _engine_options(dsn: str) -> dict:
    if dsn.startswith("sqlite"):
        # Sync routes run in a threadpool; SQLite pins connections to threads otherwise.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.postgres_dsn, **_engine_options(settings.postgres_dsn))
# Rows returned from grant/queue calls stay readable after their session closes.
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def insert_ignore(db, model, values: dict, index_elements: list[str]) -> int:
    """Insert one row unless the conflict target already exists.

    Returns the number of inserted rows (0 or 1). This is a single atomic
    statement, so concurrent writers of the same key never lose an update.
    """

    dialect = db.get_bind().dialect.name
    builder = INSERT_BUILDERS.get(dialect)
    if builder is None:
        raise RuntimeError(f"insert_ignore is not supported on dialect {dialect}")
    stmt = builder(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    return db.execute(stmt).rowcount
