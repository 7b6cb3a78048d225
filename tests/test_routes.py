import httpx
import pytest
from fastapi.testclient import TestClient

from catalog_sync import db
from catalog_sync.auth import make_token
from catalog_sync.cache.transients import TransientCache
from catalog_sync.catalog.models import SyncResult, SyncStep
from catalog_sync.catalog.source import InMemoryCatalog
from catalog_sync.main_app import app
from catalog_sync.result import ApiResult, NOT_FOUND
from catalog_sync.routes import format_last_sync
from catalog_sync.service import SyncService, get_service
from catalog_sync.sync_logger import LogStore

from conftest import MEDIA_URL, wc

SECRET = "s3cret"
TOKEN = make_token(SECRET)


@pytest.fixture
def service(config, simple_product, sleeps):
    return SyncService(
        config,
        InMemoryCatalog([simple_product]),
        LogStore(max_entries=100),
        TransientCache(),
        token_secret=SECRET,
        sleep=sleeps,
    )


@pytest.fixture
def client(service, tmp_path):
    db.configure(f"sqlite+aiosqlite:///{tmp_path}/routes.db")
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "running", "service": "Catalog Sync"}


def test_invalid_token_is_rejected(client):
    response = client.post("/api/sync", json={"action": "full_sync", "product_id": 10, "token": "nope"})
    assert response.status_code == 403
    assert response.json() == {"success": False, "data": "Invalid security token"}


def test_missing_secret_rejects_every_token(client, service):
    service.token_secret = ""
    response = client.post("/api/sync", json={"action": "clear_logs", "token": ""})
    assert response.status_code == 403


def test_unknown_action(client):
    response = client.post("/api/sync", json={"action": "purge", "token": TOKEN})
    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.parametrize("product_id", [None, 0, -3, "abc"])
def test_invalid_product_id(client, product_id):
    response = client.post("/api/sync", json={"action": "full_sync", "product_id": product_id, "token": TOKEN})
    assert response.status_code == 400
    assert response.json()["data"] == "Invalid product ID"


def test_clear_logs_and_list_logs(client, service):
    service.context().logger.error("Boom", {"product_id": 1})
    service.context().logger.info("Fine")

    errors = client.get("/api/logs", params={"level": "error"}).json()
    assert errors["success"] is True
    assert [e["message"] for e in errors["data"]] == ["Boom"]

    response = client.post("/api/sync", data={"action": "clear_logs", "token": TOKEN})
    assert response.json() == {"success": True, "data": {"message": "Logs cleared"}}
    assert client.get("/api/logs").json()["data"] == []


def test_full_sync_response_envelope(client, service, monkeypatch):
    seen = {}

    async def fake_full_sync(product_id, skip_images=False):
        seen.update(product_id=product_id, skip_images=skip_images)
        result = SyncResult(action="updated", target_id=4321, steps=[
            SyncStep(name="product", status="completed", message="Product updated"),
        ])
        return ApiResult.success(result, synced_at="2026-10-18 09:05:00")

    monkeypatch.setattr(service, "full_sync", fake_full_sync)

    response = client.post("/api/sync", data={
        "action": "full_sync", "product_id": "10", "skip_images": "1", "token": TOKEN,
    })

    assert seen == {"product_id": 10, "skip_images": True}
    body = response.json()
    assert body["success"] is True
    assert body["data"]["message"] == "Product updated"
    assert body["data"]["last_sync"] == "18.10.2026. 09:05"
    assert body["data"]["steps"] == [{"name": "product", "status": "completed", "message": "Product updated"}]


def test_stock_sync_failure_is_reported(client, service, monkeypatch):
    async def fake_stock_sync(product_id):
        return ApiResult.fail(NOT_FOUND, "Product not found on target store. Run a full sync first.")

    monkeypatch.setattr(service, "stock_sync", fake_stock_sync)

    response = client.post("/api/sync", json={"action": "stock_sync", "product_id": 10, "token": TOKEN})

    assert response.status_code == 200
    assert response.json() == {
        "success": False, "data": "Product not found on target store. Run a full sync first.",
    }


def test_connection_test_reports_failure(client, router):
    router.get(wc("products")).mock(return_value=httpx.Response(401, json={"message": "Consumer key is invalid."}))

    response = client.post("/api/sync", json={"action": "test_connection", "token": TOKEN})

    body = response.json()
    assert body["success"] is False
    assert body["data"].startswith("Connection failed: API error: Consumer key is invalid.")


def test_connection_test_basic_uses_media_endpoint(client, router):
    media = router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[]))

    response = client.post("/api/sync", json={"action": "test_connection", "test_type": "basic", "token": TOKEN})

    assert response.json() == {"success": True, "data": {"message": "Connection successful", "test_type": "basic"}}
    assert media.call_count == 1


def test_format_last_sync_falls_back_to_now():
    assert format_last_sync("2024-01-31 23:59:00") == "31.01.2024. 23:59"
    assert len(format_last_sync(None)) == len("31.01.2024. 23:59")
