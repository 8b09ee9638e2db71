"""
Storefront API tests. Each device gets its own CartService wired to the
cart backend mock, so these run the whole stack: router -> service ->
gateway -> HTTP -> backend.
"""
import pytest
from fastapi.testclient import TestClient

from cart_engine.api import create_app
from cart_engine.api.dependencies import CartServiceRegistry
from cart_engine.backend_mock import main as backend_mock
from cart_engine.repos.storage import MemoryStorage
from cart_engine.services.factory import build_cart_service

DEVICE = {"X-Device-Id": "device-1"}


@pytest.fixture
def client(backend):
    def factory(device_id=None):
        return build_cart_service(
            storage=MemoryStorage(),
            base_url="http://testserver",
            http_session=backend,
            device_id=device_id,
        )

    with TestClient(create_app(factory)) as c:
        yield c


def add(client, product_id="p1", quantity=1, price="10", headers=DEVICE, **extra):
    body = {"productId": product_id, "quantity": quantity, "price": price, "name": f"Product {product_id}", **extra}
    return client.post("/cart/items", json=body, headers=headers)


def login(client, token="tok-1"):
    return client.post("/session/login", json={"token": token}, headers=DEVICE)


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_device_header_is_required(client):
    resp = client.get("/cart")

    assert resp.status_code == 400


class TestGuestCart:
    def test_add_and_read(self, client):
        resp = add(client, quantity=2)

        assert resp.status_code == 200
        body = resp.json()
        assert body["authoritative"] is True
        assert body["cart"]["ownerMode"] == "guest"
        assert body["cart"]["totals"]["itemCount"] == 2

        cart = client.get("/cart", headers=DEVICE).json()["cart"]
        assert [i["productId"] for i in cart["items"]] == ["p1"]

    def test_devices_are_isolated(self, client):
        add(client)

        cart = client.get("/cart", headers={"X-Device-Id": "device-2"}).json()["cart"]

        assert cart["items"] == []

    def test_update_remove_clear(self, client):
        add(client, "p1")
        add(client, "p2", variant={"size": "M"})

        resp = client.patch("/cart/items/p1", json={"quantity": 4}, headers=DEVICE)
        assert resp.json()["cart"]["totals"]["itemCount"] == 5

        resp = client.request("DELETE", "/cart/items/p2", json={"variant": {"size": "M"}}, headers=DEVICE)
        assert [i["productId"] for i in resp.json()["cart"]["items"]] == ["p1"]

        resp = client.delete("/cart", headers=DEVICE)
        assert resp.json()["cart"]["items"] == []

    def test_bad_quantity_is_400(self, client):
        resp = add(client, quantity=0)

        assert resp.status_code == 400

    def test_coupons(self, client):
        add(client, price="1000")

        resp = client.post("/cart/coupon", json={"code": "save10"}, headers=DEVICE)
        assert resp.status_code == 200
        assert resp.json()["savings"] == "100.00"

        resp = client.delete("/cart/coupon/SAVE10", headers=DEVICE)
        assert resp.json()["cart"]["appliedCoupons"] == []

        resp = client.post("/cart/coupon", json={"code": "BOGUS"}, headers=DEVICE)
        assert resp.status_code == 400

    def test_summary(self, client):
        add(client, price="1000")

        summary = client.get("/cart/summary", headers=DEVICE).json()

        assert summary["isEmpty"] is False
        assert summary["qualifiesForFreeShipping"] is False
        assert summary["amountForFreeShipping"] == "4000.00"


class TestSession:
    def test_login_moves_guest_cart_to_account(self, client):
        add(client, "p1", quantity=2)

        resp = login(client)

        assert resp.status_code == 200
        body = resp.json()
        assert body["authenticated"] is True
        assert body["sync"]["synced"] == ["p1"]

        cart = client.get("/cart", headers=DEVICE).json()["cart"]
        assert cart["ownerMode"] == "authenticated"
        assert [(i["productId"], i["quantity"]) for i in cart["items"]] == [("p1", 2)]
        assert backend_mock.CARTS["tok-1"].get().totals.item_count == 2

    def test_logout_shows_empty_guest_cart(self, client):
        add(client)
        login(client)

        resp = client.post("/session/logout", headers=DEVICE)
        cart = client.get("/cart", headers=DEVICE).json()["cart"]

        assert resp.json()["authenticated"] is False
        assert cart["ownerMode"] == "guest"
        assert cart["items"] == []

    def test_empty_token_is_400(self, client):
        assert login(client, token=" ").status_code == 400

    def test_revoked_session_degrades_to_guest(self, client):
        login(client)
        backend_mock.REVOKED_TOKENS.add("tok-1")

        body = client.get("/cart", headers=DEVICE).json()

        assert body["degraded"] is True
        assert body["cart"]["ownerMode"] == "guest"

    def test_backend_outage_on_write_is_503(self, client):
        login(client)
        backend_mock.FAIL_NEXT.append(500)

        assert add(client).status_code == 503

    def test_backend_outage_on_read_serves_snapshot(self, client):
        login(client)
        add(client)
        backend_mock.FAIL_NEXT.append(500)

        body = client.get("/cart", headers=DEVICE).json()

        assert body["authoritative"] is False
        assert [i["productId"] for i in body["cart"]["items"]] == ["p1"]


class FakeService:
    def __init__(self, device_id):
        self.device_id = device_id
        self.closed = False

    def close(self):
        self.closed = True


class TestServiceRegistry:
    """One service per device, bounded by count and idle time."""

    def make_registry(self, max_services=3, idle_seconds=60):
        now = [0.0]
        registry = CartServiceRegistry(
            factory=lambda device_id=None: FakeService(device_id),
            max_services=max_services,
            idle_seconds=idle_seconds,
            clock=lambda: now[0],
        )
        return registry, now

    def test_same_device_same_service(self):
        registry, _ = self.make_registry()

        assert registry.get("d1") is registry.get("d1")
        assert len(registry) == 1

    def test_least_recently_used_is_evicted_and_closed(self):
        registry, _ = self.make_registry(max_services=2)
        d1 = registry.get("d1")
        d2 = registry.get("d2")
        registry.get("d1")

        registry.get("d3")

        assert len(registry) == 2
        assert d2.closed is True
        assert d1.closed is False
        assert registry.get("d2") is not d2

    def test_idle_devices_are_evicted(self):
        registry, now = self.make_registry(idle_seconds=60)
        d1 = registry.get("d1")
        now[0] = 30.0
        d2 = registry.get("d2")

        now[0] = 70.0
        registry.get("d3")

        assert d1.closed is True
        assert d2.closed is False
        assert len(registry) == 2

    def test_rotating_device_ids_stay_bounded(self):
        registry, _ = self.make_registry(max_services=10)

        services = [registry.get(f"device-{i}") for i in range(500)]

        assert len(registry) == 10
        assert sum(s.closed for s in services) == 490

    def test_release(self):
        registry, _ = self.make_registry()
        d1 = registry.get("d1")

        registry.release("d1")
        registry.release("unknown")

        assert d1.closed is True
        assert len(registry) == 0


def test_logout_releases_device_service(client):
    service = client.app.state.cart_services.get("device-1")
    login(client)

    client.post("/session/logout", headers=DEVICE)

    assert len(client.app.state.cart_services) == 0
    assert client.app.state.cart_services.get("device-1") is not service
