# cart_engine/services/cart_gateway.py
from decimal import Decimal
from urllib.parse import quote

import requests

from cart_engine.domain.errors import InvalidCoupon, NotFound, ServerError, Unauthorized
from cart_engine.domain.schemas import Cart, ItemIn, OwnerMode
from cart_engine.services.normalizer import normalize
from cart_engine.services.transport import HttpTransport
from cart_engine.utils.money import money
from cart_engine.utils.settings import CURRENCY, MAX_QUANTITY_PER_ITEM
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class ServerCartGateway:
    """
    Cienka bramka do koszyka na serwerze, 1:1 z kontraktem REST:

        GET    /cart                      -> koszyk
        POST   /cart/items                -> dodaj
        PATCH  /cart/items/:productId     -> zmien ilosc
        DELETE /cart/items/:productId     -> usun
        DELETE /cart                      -> wyczysc
        POST   /cart/coupon               -> kupon (+ savings)
        DELETE /cart/coupon/:code         -> usun kupon

    Bez logiki biznesowej i bez retry (to robi transport).
    401 -> Unauthorized, 404 -> NotFound, 5xx/siec/timeout -> ServerError.
    """

    def __init__(
        self,
        transport: HttpTransport,
        currency: str = CURRENCY,
        max_quantity: int = MAX_QUANTITY_PER_ITEM,
    ):
        self.transport = transport
        self.currency = currency
        self.max_quantity = max_quantity

    def get_cart(self) -> Cart:
        return self._to_cart(self._call("GET", "/cart"))

    def add_item(self, item: ItemIn) -> Cart:
        body = {
            "productId": item.product_id,
            "quantity": item.quantity,
            "name": item.name,
            "price": str(money(item.price)),
            "sku": item.sku,
            "image": item.image,
        }
        if item.variant is not None:
            body["variant"] = item.variant
        return self._to_cart(self._call("POST", "/cart/items", body))

    def update_item(self, product_id: str, quantity: int, variant=None) -> Cart:
        body = {"quantity": quantity}
        if variant is not None:
            body["variant"] = variant
        return self._to_cart(self._call("PATCH", f"/cart/items/{quote(product_id, safe='')}", body))

    def remove_item(self, product_id: str, variant=None) -> Cart:
        body = {"variant": variant} if variant is not None else None
        return self._to_cart(self._call("DELETE", f"/cart/items/{quote(product_id, safe='')}", body))

    def clear(self) -> Cart:
        return self._to_cart(self._call("DELETE", "/cart"))

    def apply_coupon(self, code: str) -> tuple[Cart, Decimal]:
        payload = self._call("POST", "/cart/coupon", {"code": code}, rejection=InvalidCoupon)
        data = payload.get("data")
        savings = money(data.get("savings")) if isinstance(data, dict) else money(None)
        return self._to_cart(payload), savings

    def remove_coupon(self, code: str) -> Cart:
        return self._to_cart(self._call("DELETE", f"/cart/coupon/{quote(code, safe='')}"))

    # =====================================================
    # helpers
    # =====================================================
    def _to_cart(self, payload: dict) -> Cart:
        return normalize(payload, OwnerMode.AUTHENTICATED, self.currency, self.max_quantity)

    def _call(self, method: str, path: str, json: dict | None = None, rejection=None) -> dict:
        try:
            resp = self.transport.request(method, path, json=json)
        except requests.Timeout as e:
            logger.error(f"Cart API {method} {path} timed out: {e}")
            raise ServerError("The cart service is not responding. Please try again.") from e
        except requests.RequestException as e:
            logger.error(f"Cart API {method} {path} failed: {e}")
            raise ServerError() from e

        status = resp.status_code
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        message = payload.get("message") if isinstance(payload, dict) else None

        if status == 401:
            raise Unauthorized(message or "Session expired. Please log in again.")
        if status == 404:
            raise NotFound(message or "Cart not found")
        if status >= 500:
            logger.error(f"Cart API {method} {path} -> {status}: {message}")
            raise ServerError(status_code=status)
        if status >= 400:
            if rejection is not None:
                raise rejection(message or "Request rejected")
            logger.error(f"Cart API {method} {path} -> {status}: {message}")
            raise ServerError(message or "Invalid cart operation", status_code=status, retryable=False)

        if not isinstance(payload, dict) or payload.get("status") == "error":
            logger.error(f"Cart API {method} {path} -> {status}: unexpected body")
            raise ServerError("Unexpected response from the cart service", status_code=status)

        return payload
