from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine

from market_ingest.core.config import get_settings


def _connect_args(url: str, statement_timeout_ms: int) -> dict:
    if url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={statement_timeout_ms}"}
    if url.startswith("sqlite"):
        return {"timeout": statement_timeout_ms / 1000, "check_same_thread": False}
    return {}


def build_engine(url: str, *, echo: bool = False) -> Engine:
    settings = get_settings()
    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": _connect_args(url, settings.DB_STATEMENT_TIMEOUT_MS),
    }
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        )
    return create_engine(url, **kwargs)


# Lazy initialization so importing the package never opens a pool
class Database:
    def __init__(self):
        self._engine = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            settings = get_settings()
            self._engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
        return self._engine

    def connect(self) -> Connection:
        return self.engine.connect()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

db_manager = Database()

def get_connection():
    with db_manager.connect() as conn:
        yield conn


_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

def dialect_insert(dialect_name: str):
    """INSERT construct supporting ON CONFLICT for the given dialect."""
    try:
        return _INSERTS[dialect_name]
    except KeyError:
        raise ValueError(f"Unsupported dialect for conflict-aware inserts: {dialect_name}") from None
