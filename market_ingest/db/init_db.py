from market_ingest.core.database import db_manager
from market_ingest.core.logging_config import get_logger, setup_logging
from market_ingest.db.models import Base

logger = get_logger("init_db")


def init_db(drop_existing: bool = False):
    with db_manager.engine.begin() as conn:
        if drop_existing:
            Base.metadata.drop_all(conn)
        Base.metadata.create_all(conn)
    logger.info("tables_created", count=len(Base.metadata.tables), dropped=drop_existing)


if __name__ == "__main__":
    setup_logging()
    init_db()
