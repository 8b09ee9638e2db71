# cart_engine/api/dependencies.py
import threading
import time
from collections import OrderedDict
from typing import Callable

from fastapi import Depends, Header, HTTPException, Request

from cart_engine.domain.errors import CartError, InvalidCoupon, ServerError, Unauthorized, ValidationError
from cart_engine.services.cart_service import CartService
from cart_engine.services.factory import build_cart_service
from cart_engine.utils.settings import DEVICE_IDLE_SECONDS, MAX_DEVICE_SESSIONS
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class CartServiceRegistry:
    """
    Jeden CartService na urzadzenie (X-Device-Id), tworzony leniwie przez fabryke.

    Rejestr jest ograniczony: urzadzenia nieuzywane dluzej niz `idle_seconds`
    oraz najdawniej uzywane ponad `max_services` sa usuwane i zamykane
    (subskrypcja storage, w redisie watek pub/sub).
    """

    def __init__(
        self,
        factory: Callable[..., CartService] = build_cart_service,
        max_services: int = MAX_DEVICE_SESSIONS,
        idle_seconds: float = DEVICE_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.max_services = max_services
        self.idle_seconds = idle_seconds
        self.clock = clock
        # device_id -> (service, ostatnie uzycie); kolejnosc = od najdawniej uzywanego
        self._services: OrderedDict[str, tuple[CartService, float]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._services)

    def get(self, device_id: str) -> CartService:
        with self._lock:
            now = self.clock()
            self._evict_idle(now)

            entry = self._services.pop(device_id, None)
            service = entry[0] if entry else self.factory(device_id=device_id)
            self._services[device_id] = (service, now)

            while len(self._services) > self.max_services:
                old_id, (old, _) = self._services.popitem(last=False)
                self._close(old_id, old, "capacity")
            return service

    def release(self, device_id: str) -> None:
        with self._lock:
            entry = self._services.pop(device_id, None)
        if entry:
            self._close(device_id, entry[0], "released")

    def _evict_idle(self, now: float) -> None:
        while self._services:
            device_id, (service, last_used) = next(iter(self._services.items()))
            if now - last_used < self.idle_seconds:
                break
            del self._services[device_id]
            self._close(device_id, service, "idle")

    @staticmethod
    def _close(device_id: str, service: CartService, reason: str) -> None:
        logger.info(f"Dropping cart service for device {device_id} ({reason})")
        service.close()


def get_device_id(x_device_id: str | None = Header(default=None)) -> str:
    if not x_device_id:
        raise HTTPException(status_code=400, detail="X-Device-Id header is required")
    return x_device_id


def get_service(request: Request, device_id: str = Depends(get_device_id)) -> CartService:
    return request.app.state.cart_services.get(device_id)


def http_error(e: CartError) -> HTTPException:
    if isinstance(e, (ValidationError, InvalidCoupon)):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, Unauthorized):
        return HTTPException(status_code=401, detail=e.message)
    if isinstance(e, ServerError):
        return HTTPException(status_code=503 if e.retryable else 502, detail=e.message)
    return HTTPException(status_code=404, detail=e.message)
