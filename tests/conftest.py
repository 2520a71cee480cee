from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest
from aiohttp import web
from fastapi.testclient import TestClient

from tracker.db import SqlHistoryStore, UnavailableHistoryStore
from tracker.main import create_app
from tracker.settings import Settings


@pytest.fixture
def config() -> Settings:
    return Settings(geoip_enabled=False, trust_proxy=False, cors_origins=["*"])


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterator[SqlHistoryStore]:
    store = SqlHistoryStore(f"sqlite:///{tmp_path / 'history.db'}")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def client(config: Settings, sqlite_store: SqlHistoryStore) -> Iterator[TestClient]:
    with TestClient(create_app(config, store=sqlite_store)) as c:
        yield c


@pytest.fixture
def degraded_client(config: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(config, store=UnavailableHistoryStore("database down"))) as c:
        yield c


async def _geo_handler(request: web.Request) -> web.Response:
    ip = request.match_info["ip"]
    if ip == "broken":
        return web.Response(text="not json", content_type="text/plain")
    if ip == "500":
        return web.Response(status=500, text="boom")
    if ip.startswith("10."):
        return web.json_response({"status": "fail", "message": "private range", "query": ip})
    return web.json_response(
        {
            "status": "success",
            "query": ip,
            "lat": 52.52,
            "lon": 13.40,
            "isp": "ExampleNet",
            "fields": request.query.get("fields"),
        }
    )


@pytest.fixture
def geo_service() -> Iterator[str]:
    """ip-api.com lookalike on its own loop thread; yields the URL template."""
    app = web.Application()
    app.router.add_get("/json/{ip}", _geo_handler)
    loop = asyncio.new_event_loop()
    runner = web.AppRunner(app)
    loop.run_until_complete(runner.setup())
    site = web.TCPSite(runner, "127.0.0.1", 0)
    loop.run_until_complete(site.start())
    port = runner.addresses[0][1]
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{port}/json/{{ip}}"

    asyncio.run_coroutine_threadsafe(runner.cleanup(), loop).result(timeout=5)
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()
