"""
Shared fixtures for cart engine tests.

Fakes are injected through constructors; the server side is either a scripted
FakeGateway (unit tests) or the in-memory cart backend mock driven through
FastAPI's TestClient (integration tests).
"""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from cart_engine.backend_mock import main as backend_mock
from cart_engine.domain.schemas import ItemIn, OwnerMode
from cart_engine.repos.storage import MemoryStorage
from cart_engine.services.cart_service import CartService
from cart_engine.services.factory import build_cart_service
from cart_engine.services.guest_cart_store import GuestCartStore
from cart_engine.services.normalizer import normalize
from cart_engine.services.session import AuthSession
from cart_engine.services.sync_coordinator import SyncCoordinator
from cart_engine.services.totals import ShippingPolicy

NO_SHIPPING = ShippingPolicy(free_shipping_threshold=Decimal("0"), default_cost=Decimal("0"))


def make_item(product_id="p1", quantity=1, price="29.99", variant=None, name=None) -> ItemIn:
    return ItemIn(
        product_id=product_id,
        quantity=quantity,
        price=Decimal(price),
        variant=variant,
        name=name or f"Product {product_id}",
        sku=f"SKU-{product_id}",
    )


class FakeGateway:
    """
    In-memory stand-in for ServerCartGateway.

    `errors[op]` is raised (once) the next time `op` is called; `calls` records
    every call in order; `hooks[op]` runs before the op (used to simulate events
    landing while a request is in flight).
    """

    def __init__(self):
        self.store = GuestCartStore(MemoryStorage())
        self.calls: list[str] = []
        self.errors: dict[str, Exception] = {}
        self.hooks: dict[str, callable] = {}

    def _enter(self, op: str):
        self.calls.append(op)
        hook = self.hooks.pop(op, None)
        if hook:
            hook()
        error = self.errors.pop(op, None)
        if error:
            raise error

    def _cart(self):
        return normalize(self.store.get(), OwnerMode.AUTHENTICATED)

    def get_cart(self):
        self._enter("get_cart")
        return self._cart()

    def add_item(self, item):
        self._enter("add_item")
        self.store.add_item(item)
        return self._cart()

    def update_item(self, product_id, quantity, variant=None):
        self._enter("update_item")
        self.store.update_item(product_id, quantity, variant)
        return self._cart()

    def remove_item(self, product_id, variant=None):
        self._enter("remove_item")
        self.store.remove_item(product_id, variant)
        return self._cart()

    def clear(self):
        self._enter("clear")
        self.store.clear()
        return self._cart()

    def apply_coupon(self, code):
        self._enter("apply_coupon")
        cart = self.store.apply_coupon(code)
        return self._cart(), cart.applied_coupons[0].computed_discount

    def remove_coupon(self, code):
        self._enter("remove_coupon")
        self.store.remove_coupon(code)
        return self._cart()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def guest_store(storage):
    store = GuestCartStore(storage)
    yield store
    store.close()


@pytest.fixture
def flat_guest_store(storage):
    """Guest store with zero tax and zero shipping."""
    store = GuestCartStore(storage, tax_rate=Decimal("0"), shipping_policy=NO_SHIPPING)
    yield store
    store.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_service(guest_store, gateway):
    def _make(token=None, max_unique_items=50):
        service = CartService(guest_store, gateway, AuthSession(token), max_unique_items=max_unique_items)
        service.sync_coordinator = SyncCoordinator(service, guest_store)
        return service

    return _make


@pytest.fixture
def backend():
    backend_mock.reset()
    with TestClient(backend_mock.app) as client:
        yield client
    backend_mock.reset()


@pytest.fixture
def live_service(backend):
    """CartService wired end-to-end against the cart backend mock."""

    def _make(token=None, storage=None):
        return build_cart_service(
            storage=storage or MemoryStorage(),
            base_url="http://testserver",
            http_session=backend,
            token=token,
        )

    return _make
