"""
Database connection and session management.
Uses SQLAlchemy; Postgres in production, SQLite for local runs and tests.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from catalog_engine.core.errors import CatalogError, ConflictError, PersistenceError
from catalog_engine.utils.logger import get_logger

logger = get_logger("data.database")

# Base class for all our database models
Base = declarative_base()


def create_catalog_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the catalog store.

    In-memory SQLite URLs get a StaticPool so every session sees the same
    database; SQLite connections get foreign keys switched on.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used by the catalog service; objects stay readable after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all catalog tables that do not exist yet."""
    # Import models so they register with Base.metadata
    from catalog_engine.data import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def transaction(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Run a unit of work in one transaction.

    Commits on success and rolls back on any error. Store errors are mapped to
    the catalog error taxonomy: unique/foreign-key violations become
    ConflictError, anything else from SQLAlchemy becomes PersistenceError.
    """
    session = session_factory()
    try:
        with session.begin():
            yield session
    except CatalogError:
        raise
    except IntegrityError as e:
        logger.warning(f"Write rejected by store constraints: {e.orig}")
        raise ConflictError("The write conflicts with existing catalog data.", {"reason": str(e.orig)}) from e
    except SQLAlchemyError as e:
        logger.error(f"Catalog store error: {e}")
        raise PersistenceError("Catalog store operation failed.", {"reason": str(e)}) from e
    finally:
        session.close()


@contextmanager
def read_session(session_factory: sessionmaker) -> Iterator[Session]:
    """Session for read-only work; store errors become PersistenceError."""
    session = session_factory()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"Catalog store read failed: {e}")
        raise PersistenceError("Catalog store read failed.", {"reason": str(e)}) from e
    finally:
        session.close()
