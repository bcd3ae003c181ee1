import pytest
from fastapi.testclient import TestClient

from gatesim.crud import crud_setting
from gatesim.schemas.catalog import PricingConfig

pytestmark = pytest.mark.api


def test_search_all_packages(client: TestClient):
    response = client.get("/api/v1/packages/search")
    assert response.status_code == 200
    data = response.json()
    skus = [p["sku"] for p in data["packages"]]

    assert data["count"] == len(skus) == 6
    assert "jp-5gb-7d-a" not in skus # beaten by the cheaper duplicate
    prices = [p["sell_price_mnt"] for p in data["packages"]]
    assert prices == sorted(prices)
    assert all(p % 100 == 0 for p in prices)

def test_search_by_country_name(client: TestClient):
    response = client.get("/api/v1/packages/search", params={"country": "Japan"})
    assert response.status_code == 200
    packages = response.json()["packages"]

    assert [p["sku"] for p in packages] == ["jp-topup-1gb", "jp-5gb-7d-b", "asia-10gb-30d"]
    regional = packages[-1]
    assert regional["countries"][0] == "JP"
    assert regional["title"] == "Япон + 3 улс"
    assert regional["is_regional"] is True

def test_search_filters_combine(client: TestClient):
    response = client.get("/api/v1/packages/search", params={
        "country": "JP", "duration": "short", "top_up": "false",
    })
    assert [p["sku"] for p in response.json()["packages"]] == ["jp-5gb-7d-b"]

def test_search_unlimited_passes_data_filter(client: TestClient):
    response = client.get("/api/v1/packages/search", params={"country": "CN", "min_data": 20000})
    packages = response.json()["packages"]
    assert [p["sku"] for p in packages] == ["cn-unl-10d"]
    assert packages[0]["data_amount_mb"] == -1
    assert packages[0]["duration_days"] == 10
    assert packages[0]["data_label"] == "Unlimited"

def test_search_sort_and_limit(client: TestClient):
    response = client.get("/api/v1/packages/search", params={"sort": "price_desc", "limit": 2})
    assert [p["sku"] for p in response.json()["packages"]] == ["asia-10gb-30d", "cn-unl-10d"]

def test_unknown_country_returns_empty(client: TestClient):
    response = client.get("/api/v1/packages/search", params={"country": "Atlantis"})
    assert response.status_code == 200
    assert response.json() == {"count": 0, "packages": []}

def test_invalid_sort_is_rejected(client: TestClient):
    assert client.get("/api/v1/packages/search", params={"sort": "random"}).status_code == 422

def test_prices_follow_stored_settings(client: TestClient, db_session):
    crud_setting.set_pricing_config(db_session, pricing=PricingConfig(usd_to_mnt_rate=3000, margin_percent=10))
    response = client.get("/api/v1/packages/jp-5gb-7d-b")
    assert response.status_code == 200
    assert response.json()["sell_price_mnt"] == 36300

def test_read_package(client: TestClient):
    response = client.get("/api/v1/packages/kr-3gb-5d")
    assert response.status_code == 200
    data = response.json()
    assert data["sell_price_mnt"] == 15900
    assert data["country_name"] == "Солонгос"
    assert data["currency"] == "MNT"

def test_read_package_not_found(client: TestClient):
    assert client.get("/api/v1/packages/does-not-exist").status_code == 404
