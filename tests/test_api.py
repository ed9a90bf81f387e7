from unittest.mock import patch

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from market_ingest import main
from market_ingest.core import database
from market_ingest.core.config import get_settings
from market_ingest.ingestion.coordinator import IngestionCoordinator
from market_ingest.main import app


@pytest_asyncio.fixture
async def async_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_health(async_client):
    IngestionCoordinator().set_offset("spot.kline", 3)

    response = await async_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["db_connectivity"] == "connected"
    assert body["tracked_streams"] == 1


async def test_list_offsets(async_client):
    coordinator = IngestionCoordinator()
    coordinator.set_offset("b", 2)
    coordinator.set_offset("a", 1)

    response = await async_client.get("/offsets")

    assert response.status_code == 200
    data = response.json()
    assert "meta" in data
    assert [(item["stream_name"], item["offset"]) for item in data["data"]] == [("a", 1), ("b", 2)]


async def test_get_stream_offset(async_client):
    IngestionCoordinator().set_offset("spot.kline", 41)

    response = await async_client.get("/offsets/spot.kline")

    assert response.status_code == 200
    assert response.json()["offset"] == 41


async def test_unknown_stream_is_404(async_client):
    response = await async_client.get("/offsets/nope")
    assert response.status_code == 404


async def test_metrics_are_exposed(async_client):
    response = await async_client.get("/metrics")
    assert response.status_code == 200
    assert "ingest_rows_written_total" in response.text


async def test_health_reports_unreachable_database(async_client, monkeypatch, tmp_path):
    unreachable = database.build_engine(f"sqlite:///{tmp_path / 'missing' / 'ingest.db'}")
    monkeypatch.setattr(database.db_manager, "_engine", unreachable)

    response = await async_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["db_connectivity"].startswith("error")
    assert body["tracked_streams"] is None


def test_run_serves_the_app():
    with patch("market_ingest.main.uvicorn.run") as serve:
        main.run()

    serve.assert_called_once()
    assert serve.call_args.args[0] is main.app
    assert serve.call_args.kwargs["port"] == get_settings().API_PORT
