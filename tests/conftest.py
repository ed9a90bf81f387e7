import os

# Settings require a URL at import time; the real engine is swapped below
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from unittest.mock import patch

from market_ingest.core import database
# Explicit import to ensure metadata is populated
from market_ingest.db.models import Base


# Function-Scoped Engine on a file so that worker threads share one database
@pytest.fixture(scope="function")
def db_engine(tmp_path):
    engine = database.build_engine(f"sqlite:///{tmp_path / 'ingest.db'}")
    yield engine
    engine.dispose()


# Keep the app startup from creating tables on the configured database
@pytest.fixture(scope="function", autouse=True)
def mock_startup_handlers():
    with patch("market_ingest.main.init_db") as mock_init:
        yield mock_init


@pytest.fixture(scope="function", autouse=True)
def setup_test_db(db_engine):
    original_engine = database.db_manager._engine
    database.db_manager._engine = db_engine

    with db_engine.begin() as conn:
        Base.metadata.drop_all(conn)
        Base.metadata.create_all(conn)

    yield

    with db_engine.begin() as conn:
        Base.metadata.drop_all(conn)
    database.db_manager._engine = original_engine
