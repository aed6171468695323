import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from cache import ProductQueryCache
from config import Settings, get_settings
from database import get_db
from orders import OrderStore
from products import ProductStore
from schemas import OrderCreate


@pytest.fixture
def db():
    return mongomock.MongoClient().get_database("saheli_test")


@pytest.fixture
def cache():
    return ProductQueryCache(ttl=10)


@pytest.fixture
def products(db, cache):
    return ProductStore(db, cache)


@pytest.fixture
def orders(db):
    return OrderStore(db)


@pytest.fixture
def settings():
    return Settings(store_name="Saheli Store", currency_symbol="₹")


@pytest.fixture
def client(db, settings):
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[get_settings] = lambda: settings
    main.app.state.product_cache = ProductQueryCache(ttl=10)
    with TestClient(main.app, raise_server_exceptions=False) as c:
        yield c
    main.app.dependency_overrides.clear()


def order_payload(**overrides):
    payload = {
        "customer": {
            "name": "Asha Verma",
            "phone": "9876543210",
            "email": " Asha@Example.com ",
            "address": {"line1": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"},
        },
        "cartItems": [
            {"productId": "PID-1", "title": "Soap", "price": 50, "qty": 2},
            {"productId": "PID-2", "title": "Shampoo", "price": 30, "qty": 1},
        ],
        "totalPrice": 130,
        "paymentMethod": "UPI",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_order(orders):
    def _make(**overrides):
        return orders.create(OrderCreate.model_validate(order_payload(**overrides)))

    return _make
