import pytest
from sqlalchemy.exc import OperationalError


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client):
    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] in {"ok", "degraded"}
    assert payload.get("db_status") in {"ok", "error"}
    assert payload.get("migrations_status") in {"up_to_date", "out_of_date", "unknown"}
    assert isinstance(payload.get("db_ok"), bool)
    assert isinstance(payload.get("migrations_ok"), bool)
    assert isinstance(payload["scheduler_config_enabled"], bool)
    assert isinstance(payload["scheduler_running"], bool)
    assert "scheduler_lock" in payload


@pytest.mark.anyio("asyncio")
async def test_health_reports_payfast_without_leaking_secrets(client, settings):
    response = await client.get("/health")
    payfast = response.json()["payfast"]

    assert payfast["mode"] == "sandbox"
    assert "sandbox.payfast.co.za" in payfast["base_url"]
    assert payfast["merchant_configured"] is True
    assert payfast["passphrase_configured"] is True
    fps = payfast["fingerprints"]
    assert len(fps["merchant_key"]) == 8
    assert len(fps["passphrase"]) == 8
    assert settings.PAYFAST_MERCHANT_KEY not in response.text
    assert settings.PAYFAST_PASSPHRASE not in response.text


@pytest.mark.anyio("asyncio")
async def test_health_degrades_on_db_failure(monkeypatch, client):
    class BrokenEngine:
        def connect(self):  # pragma: no cover - simple stub
            raise OperationalError("SELECT 1", {}, Exception("DB down"))

    monkeypatch.setattr("app.routers.health.get_engine", lambda: BrokenEngine())

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"
    assert payload["migrations_status"] == "unknown"
    assert payload["db_ok"] is False
    assert payload["migrations_ok"] is False
    assert payload["scheduler_lock"] is None


@pytest.mark.anyio("asyncio")
async def test_health_status_degraded_when_db_status_error(monkeypatch, client):
    from app.routers import health as health_module

    monkeypatch.setattr(health_module, "_db_status", lambda: "error")

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"
