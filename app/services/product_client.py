# app/services/product_client.py
import requests
from pydantic import ValidationError

from app.domain.errors import CatalogUnavailable, ProductNotFound
from app.domain.schemas import CatalogProduct
from app.utils.retry import http_retry
from app.utils.settings import PRODUCT_SERVICE_URL, PRODUCT_SERVICE_TIMEOUT
from app.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """Catalog lookup over HTTP: price, discount, gst rate, stock and colors."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or PRODUCT_SERVICE_TIMEOUT

    def fetch_product(self, product_id: str) -> CatalogProduct:
        try:
            payload = self._get(product_id)
        except requests.RequestException as e:
            logger.error(f"Catalog lookup for product {product_id} failed: {e}")
            raise CatalogUnavailable("Product catalog is unavailable") from e

        if payload is None:
            raise ProductNotFound(f"Product {product_id} not found")

        try:
            return CatalogProduct.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Catalog returned malformed product {product_id}: {e}")
            raise CatalogUnavailable("Product catalog returned a malformed product") from e

    @http_retry()
    def _get(self, product_id: str) -> dict | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        # 404 is an answer, not a transport failure: no retry
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()
