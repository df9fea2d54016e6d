"""
Database file resolution and connection factory for the Foodie store.
"""
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import DeclarativeBase

load_dotenv()

DB_FILENAME = "foodie.sqlite"
DEFAULT_DB_PATH = os.path.join(os.path.expanduser("~"), "Documents", DB_FILENAME)


class Base(DeclarativeBase):
    pass


def get_db_path() -> str:
    """Configured database file; the parent directory is created on first run."""
    path = os.getenv("FOODIE_DB_PATH", DEFAULT_DB_PATH)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    return path


def create_db_engine(path: str) -> Engine:
    echo = os.getenv("FOODIE_SQL_ECHO", "false").lower() == "true"
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
        echo=echo,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON;")
        cursor.close()

    return engine


def open_connection(engine: Engine) -> Connection:
    # Every statement commits on its own; nothing here batches writes.
    return engine.connect().execution_options(isolation_level="AUTOCOMMIT")


def init_db(conn: Connection) -> None:
    from src.models import consumption  # noqa: F401
    Base.metadata.create_all(bind=conn)
