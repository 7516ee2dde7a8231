"""
Tests for the Shop service HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from shared.errors import CacheStoreUnavailableError
from service_shop.app.main import ShopService
from service_shop.app.shops.models import Result, Shop, ShopType
from service_shop.app.shops.service import SHOP_NOT_FOUND, ShopQueryStrategy


@pytest.fixture
def service():
    """Create the service without running its startup hooks."""
    return ShopService()


@pytest.fixture
def client(service):
    """Create test client."""
    return TestClient(service.app)


@pytest.fixture
def shop():
    return Shop(id=1, name="103 Tea House", type_id=1, address="No. 30 Jinhua Road")


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "shop"
    assert data["version"] == "1.0.0"


def test_query_shop(service, client, shop):
    with patch.object(service.shops, "query_shop_by_id", new_callable=AsyncMock) as mock_query:
        mock_query.return_value = Result.ok(shop)

        response = client.get("/shop/1")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["name"] == "103 Tea House"
    mock_query.assert_awaited_once_with(1, ShopQueryStrategy.PASS_THROUGH)


def test_query_shop_with_strategy(service, client):
    with patch.object(service.shops, "query_shop_by_id", new_callable=AsyncMock) as mock_query:
        mock_query.return_value = Result.fail(SHOP_NOT_FOUND)

        response = client.get("/shop/3", params={"strategy": "logical_expire"})

    assert response.status_code == 200
    body = response.json()
    assert body["errorMsg"] == SHOP_NOT_FOUND
    assert "error_msg" not in body
    mock_query.assert_awaited_once_with(3, ShopQueryStrategy.LOGICAL_EXPIRE)


def test_query_shop_rejects_unknown_strategy(client):
    response = client.get("/shop/1", params={"strategy": "yolo"})
    assert response.status_code == 422


def test_store_outage_maps_to_503(service, client):
    with patch.object(service.shops, "query_shop_by_id", new_callable=AsyncMock) as mock_query:
        mock_query.side_effect = CacheStoreUnavailableError("connection refused")

        response = client.get("/shop/1")

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "CACHE_STORE_UNAVAILABLE"
    assert body["request_id"]


def test_update_shop_without_id(client):
    response = client.put("/shop", json={"name": "nameless"})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_update_shop(service, client):
    with patch.object(service.shops, "update_shop", new_callable=AsyncMock) as mock_update:
        mock_update.return_value = Result.ok()

        response = client.put("/shop", json={"id": 1, "name": "renamed"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    request = mock_update.await_args.args[0]
    assert request.id == 1
    assert request.name == "renamed"


def test_shop_type_list(service, client):
    types = [ShopType(id=1, name="Food", sort=1)]
    with patch.object(service.shops, "query_type_list", new_callable=AsyncMock) as mock_list:
        mock_list.return_value = Result.ok(types, total=1)

        response = client.get("/shop-type/list")

    assert response.status_code == 200
    assert response.json()["data"][0]["name"] == "Food"


def test_warm_shop(service, client, shop):
    with patch.object(service.shops, "warm_shop", new_callable=AsyncMock) as mock_warm:
        mock_warm.return_value = Result.ok(shop)

        response = client.post("/shop/1/warm", params={"expire_seconds": 20})

    assert response.status_code == 200
    mock_warm.assert_awaited_once_with(1, 20.0)


def test_health_reports_dependencies(service, client):
    with patch.object(service.store, "health_check", new_callable=AsyncMock) as redis_health, \
            patch.object(service.repository, "health_check", new_callable=AsyncMock) as pg_health:
        redis_health.return_value = True
        pg_health.return_value = False

        response = client.get("/health")

    assert response.status_code == 503
    data = response.json()
    assert data["service"] == "shop"
    assert data["dependencies"] == {"redis": "ok", "postgres": "error"}


def test_request_id_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_metrics_endpoint(client):
    client.get("/")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "cache_lookups_total" in response.text
