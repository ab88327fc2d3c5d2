"""SQLAlchemy engine and key-value table setup for FamilyTasks.

Tasks, learning records and rescheduling events are stored as JSON values
in one `key_value_entries` table. `DATABASE_URL` picks the backend; without it a
local `familytasks.db` SQLite file is used.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./familytasks.db")


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """create_engine keyword arguments for `database_url`.

    SQLite gets cross-thread connections; server databases get a bounded
    pool sized by DB_POOL_SIZE, DB_MAX_OVERFLOW and DB_POOL_TIMEOUT_SEC.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # Webhook and API handlers share the engine across threads.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


# No connection is opened until the first session query
engine = build_engine(DATABASE_URL)


@event.listens_for(engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """WAL journal on SQLite, so webhook writes don't stall API reads."""
    if _is_sqlite_url(DATABASE_URL):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(engine_override: Engine = None) -> None:
    """Create the key-value table if it does not exist."""
    # KeyValueEntryDB must be registered on Base.metadata before create_all
    from familytasks.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine_override or engine)
