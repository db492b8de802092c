"""
Tests del ciclo de vida de la aplicacion (startup/shutdown).
"""
import httpx
import pytest

from crm_sync.core import events
from crm_sync.core.config import settings
from main import create_application


@pytest.mark.asyncio
async def test_lifespan_runs_startup_and_shutdown(monkeypatch, tmp_path):
    calls = []

    async def fake_init_db():
        calls.append("init_db")

    async def fake_close_db():
        calls.append("close_db")

    monkeypatch.setattr(events, "init_db", fake_init_db)
    monkeypatch.setattr(events, "close_db", fake_close_db)
    monkeypatch.setattr(settings, "SYNC_ENABLED", False)
    monkeypatch.setattr(settings, "LOG_FILE", str(tmp_path / "app.log"))

    app = create_application()

    async with app.router.lifespan_context(app):
        assert calls == ["init_db"]
        assert app.state.scheduler.running is False
        assert app.state.dispatcher.running is True

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")
        assert response.status_code == 200

    assert calls == ["init_db", "close_db"]
    assert app.state.dispatcher.running is False
