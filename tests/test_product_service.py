import pytest
from fastapi.testclient import TestClient

from app.domain.schemas import CatalogProduct
from app.product_service.main import PRODUCTS, app


@pytest.fixture
def catalog_client():
    return TestClient(app)


@pytest.mark.parametrize("product_id", sorted(PRODUCTS))
def test_products_match_catalog_contract(catalog_client, product_id):
    resp = catalog_client.get(f"/products/{product_id}")

    assert resp.status_code == 200
    assert CatalogProduct.model_validate(resp.json()).id == product_id


def test_unknown_product(catalog_client):
    assert catalog_client.get("/products/nope").status_code == 404
