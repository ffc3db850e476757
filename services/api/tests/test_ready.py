import pytest
from app.infra import redis_client
from app.infra.redis_client import get_redis


@pytest.mark.asyncio
async def test_redis_connection():
    r = await get_redis()
    # Backed by fakeredis from conftest
    pong = await r.ping()
    assert pong is True


def test_ready_reports_db_and_redis(client):
    resp = client.get("/api/ready")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "db_ok": True, "redis_ok": True}


def test_ready_survives_redis_outage(client, monkeypatch):
    async def broken():
        raise ConnectionError("redis down")

    monkeypatch.setattr("app.routers.ready.get_redis", broken)
    resp = client.get("/api/ready")
    assert resp.status_code == 200
    assert resp.json()["redis_ok"] is False
    assert resp.json()["ok"] is True
    assert redis_client._redis_async is not None
