"""Fast smoke checks for critical workflows."""

import pytest
from fastapi.testclient import TestClient

from coatquote.core.config import settings


@pytest.mark.smoke
def test_smoke_health_endpoint(client: TestClient) -> None:
    response = client.get(f"{settings.API_V1_PREFIX}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.smoke
def test_smoke_upload_to_price(client: TestClient, price_workbook: bytes, owner_headers: dict) -> None:
    response = client.put(
        f"{settings.API_V1_PREFIX}/pricing/config",
        headers=owner_headers,
        data={
            "selected_sheet": "Verzinken",
            "length_cell": "D67",
            "width_cell": "D68",
            "height_cell": "D69",
            "weight_cell": "D74",
            "price_cell": "L17",
        },
        files={"file": ("prijzen.xlsx", price_workbook)},
    )
    assert response.status_code == 200

    response = client.post(
        f"{settings.API_V1_PREFIX}/pricing/calculate",
        headers=owner_headers,
        json={"length": 2000, "width": 500, "height": 600, "weight": 100},
    )
    assert response.status_code == 200
    assert response.json()["price"] == 225.0
