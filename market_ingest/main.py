import time

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import func, select

from market_ingest.api.routes import router as api_router
from market_ingest.core.config import get_settings
from market_ingest.core.database import db_manager
from market_ingest.core.logging_config import get_logger, setup_logging
from market_ingest.db.init_db import init_db
from market_ingest.db.models import StreamOffset

# Setup Structured Logging
setup_logging()
logger = get_logger("main")

app = FastAPI(title=get_settings().PROJECT_NAME)

# Instrument Prometheus
Instrumentator().instrument(app).expose(app)


@app.on_event("startup")
def startup_event():
    logger.info("startup_event", msg="Creating ingestion tables")
    try:
        init_db()
    except Exception as e:
        logger.error("db_init_failed", error=str(e))


@app.on_event("shutdown")
def shutdown_event():
    db_manager.dispose()


@app.get("/health")
def health_check():
    start_time = time.time()
    db_status = "unhealthy"
    streams = None

    try:
        with db_manager.connect() as conn:
            conn.execute(select(1))
            db_status = "connected"
            streams = conn.execute(select(func.count()).select_from(StreamOffset)).scalar_one()
    except Exception as e:
        logger.warning("health_check_failed", error=str(e))
        db_status = f"error: {str(e)}"

    latency = (time.time() - start_time) * 1000

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "db_connectivity": db_status,
        "tracked_streams": streams,
        "latency_ms": round(latency, 2),
    }


app.include_router(api_router)


def run():
    settings = get_settings()
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_config=None)


if __name__ == "__main__":
    run()
