# cart_engine/services/events.py
from dataclasses import dataclass
from typing import Callable

from cart_engine.domain.schemas import Cart
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

CART_CHANGED = "cart-changed"
CART_CLEARED = "cart-cleared"


@dataclass(frozen=True)
class CartEvent:
    kind: str
    cart: Cart | None
    source: str = "local"  # local | remote
    persisted: bool = True


CartListener = Callable[[CartEvent], None]


class CartEventBus:
    """Prosta lista obserwatorow, zamiast globalnych eventow."""

    def __init__(self):
        self._listeners: list[CartListener] = []

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: CartEvent) -> None:
        for listener in list(self._listeners):
            #blad sluchacza nie moze wycofac mutacji koszyka
            try:
                listener(event)
            except Exception:
                logger.exception(f"Cart listener failed on {event.kind}")
