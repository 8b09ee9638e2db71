# cart_engine/services/factory.py
from typing import Any

from cart_engine.repos.storage import CartStorage, MemoryStorage, RedisStorage
from cart_engine.services.cart_gateway import ServerCartGateway
from cart_engine.services.cart_service import CartService
from cart_engine.services.guest_cart_store import GuestCartStore
from cart_engine.services.session import AuthSession
from cart_engine.services.sync_coordinator import SyncCoordinator
from cart_engine.services.transport import HttpTransport
from cart_engine.utils.settings import GUEST_STORAGE


def default_storage(device_id: str | None = None) -> CartStorage:
    if GUEST_STORAGE == "redis":
        return RedisStorage(namespace=device_id)
    return MemoryStorage()


def build_cart_service(
    storage: CartStorage | None = None,
    base_url: str | None = None,
    http_session: Any = None,
    token: str | None = None,
    device_id: str | None = None,
) -> CartService:
    """Sklada caly silnik koszyka (bez singletonow, wszystko wstrzykiwane)."""
    session = AuthSession(token)
    transport = HttpTransport(
        base_url=base_url,
        session=http_session,
        token_provider=lambda: session.token,
    )
    guest_store = GuestCartStore(storage or default_storage(device_id))
    service = CartService(guest_store, ServerCartGateway(transport), session)
    service.sync_coordinator = SyncCoordinator(service, guest_store)
    return service
