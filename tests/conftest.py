import os
import tempfile

# settings are read at import time, configure before anything from app is loaded
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"

import jwt
import pytest
from fastapi.testclient import TestClient

from app.data.database import Base, SessionLocal, engine
from app.data import models  # noqa: F401
from app.domain.errors import CatalogUnavailable, ProductNotFound
from app.domain.schemas import CatalogProduct
from app.services.cart_service import CartService
from app.services.lock_service import LockService
from app.services.order_service import OrderService


class FakeCatalog:
    """In-memory catalog lookup with the same contract as ProductClient."""

    def __init__(self):
        self.products = {}
        self.down = False
        self.calls = []

    def add(self, product_id, price, stock=10, discount=None, gst=18, colors=None, name=None):
        self.products[product_id] = {
            "_id": product_id,
            "name": name or f"Product {product_id}",
            "images": [f"/images/{product_id}.jpg"],
            "price": price,
            "discountPrice": discount,
            "gstRate": gst,
            "countInStock": stock,
            "colors": colors or [],
        }

    def set(self, product_id, **fields):
        self.products[product_id].update(fields)

    def fetch_product(self, product_id):
        self.calls.append(product_id)
        if self.down:
            raise CatalogUnavailable("Product catalog is unavailable")
        if product_id not in self.products:
            raise ProductNotFound(f"Product {product_id} not found")
        return CatalogProduct.model_validate(self.products[product_id])


class FakeRedis:
    """Just the SET NX EX / EVAL subset LockService uses."""

    def __init__(self):
        self.store = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


class RecordingNotifier:
    """Records order events; with `down` set it fails like an unreachable broker."""

    def __init__(self):
        self.events = []
        self.down = False

    def _publish(self, event, user_id, order_number):
        if self.down:
            raise ConnectionError("broker unreachable")
        self.events.append((event, user_id, order_number))

    def order_placed(self, user_id, order_number):
        self._publish("placed", user_id, order_number)

    def order_paid(self, user_id, order_number):
        self._publish("paid", user_id, order_number)

    def order_delivered(self, user_id, order_number):
        self._publish("delivered", user_id, order_number)


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog():
    c = FakeCatalog()
    c.add("P1", price=999, stock=10)
    c.add(
        "CASE",
        price=599,
        discount=449,
        stock=5,
        colors=[
            {"name": "Black", "hexCode": "#000000", "inStock": True},
            {"name": "Red", "hexCode": "#FF0000", "inStock": False},
        ],
    )
    c.add("GLASS", price=249, stock=50, gst=12)
    return c


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def lock_service(redis_client):
    return LockService(client=redis_client)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def cart_service(db, catalog, lock_service):
    return CartService(db=db, product_client=catalog, lock_service=lock_service)


@pytest.fixture
def order_service(db, catalog, notifier):
    return OrderService(db, catalog, notifier)


@pytest.fixture
def client(catalog, lock_service, notifier):
    from app.main import app
    from app.api.deps import get_lock_service, get_notification_service, get_product_client

    app.dependency_overrides[get_product_client] = lambda: catalog
    app.dependency_overrides[get_lock_service] = lambda: lock_service
    app.dependency_overrides[get_notification_service] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def access_token(user_id, role="customer"):
    return jwt.encode(
        {"sub": user_id, "role": role, "type": "access"},
        "test-secret",
        algorithm="HS256",
    )


def auth(user_id, role="customer"):
    return {"Authorization": f"Bearer {access_token(user_id, role)}"}


ADDRESS = {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "pincode": "560001"}
