# cart_engine/services/guest_cart_store.py
import json
import uuid
from datetime import datetime, timezone

from cart_engine.domain.errors import InvalidCoupon, StorageError
from cart_engine.domain.schemas import Cart, CartItem, ItemIn, OwnerMode, ProductSnapshot, line_id
from cart_engine.repos.storage import CartStorage
from cart_engine.services.coupons import CouponEngine, clean_code
from cart_engine.services.events import CART_CHANGED, CART_CLEARED, CartEvent, CartEventBus
from cart_engine.services.normalizer import normalize
from cart_engine.services.totals import DEFAULT_TAX_RATE, ShippingPolicy, compute
from cart_engine.utils.money import ZERO, to_decimal
from cart_engine.utils.settings import CURRENCY, GUEST_CART_KEY, MAX_QUANTITY_PER_ITEM
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class GuestCartStore:
    """
    Koszyk goscia trzymany lokalnie (CartStorage pod kluczem `guest_cart`).

    - kazda mutacja: przeliczenie kuponow i sum -> zapis calej migawki -> event cart-changed
    - blad zapisu jest logowany i raportowany w evencie (persisted=False),
      koszyk w pamieci zostaje obowiazujacy dla tej instancji
    - zmiana zapisana przez inna instancje (inna karta) -> porzucamy kopie w pamieci,
      kolejny odczyt idzie do storage (last writer wins, bez scalania)
    """

    def __init__(
        self,
        storage: CartStorage,
        coupon_engine: CouponEngine | None = None,
        events: CartEventBus | None = None,
        key: str = GUEST_CART_KEY,
        tax_rate=DEFAULT_TAX_RATE,
        shipping_policy: ShippingPolicy = ShippingPolicy(),
        max_quantity: int = MAX_QUANTITY_PER_ITEM,
        currency: str = CURRENCY,
    ):
        self.storage = storage
        self.coupon_engine = coupon_engine or CouponEngine()
        self.events = events or CartEventBus()
        self.key = key
        self.tax_rate = tax_rate
        self.shipping_policy = shipping_policy
        self.max_quantity = max_quantity
        self.currency = currency

        self.instance_id = uuid.uuid4().hex
        self.last_persist_error: StorageError | None = None
        self._cart: Cart | None = None
        self._unsubscribe = storage.subscribe(key, self._on_storage_change)

    def close(self) -> None:
        self._unsubscribe()

    #query
    def get(self) -> Cart:
        if self._cart is not None:
            return self._cart.model_copy(deep=True)

        try:
            raw = self.storage.load(self.key)
        except StorageError as e:
            logger.error(f"Guest cart read failed: {e}")
            return Cart.empty(OwnerMode.GUEST, self.currency)

        self._cart = normalize(raw, OwnerMode.GUEST, self.currency, self.max_quantity)
        return self._cart.model_copy(deep=True)

    #commands
    def add_item(self, item: ItemIn) -> Cart:
        cart = self.get()
        line = cart.find_line(item.product_id, item.variant)

        if line:
            quantity = line.quantity + item.quantity
            if quantity <= 0:
                cart.items.remove(line)
            else:
                logger.info(f"Guest cart: {item.product_id} already in cart, quantity {line.quantity} -> {quantity}")
                line.quantity = min(quantity, self.max_quantity)
        elif item.quantity > 0:
            logger.info(f"Guest cart: adding {item.product_id} x{item.quantity}")
            cart.items.append(self._new_line(item))

        return self._save(cart)

    def update_item(self, product_id: str, quantity: int, variant=None) -> Cart:
        if quantity <= 0:
            return self.remove_item(product_id, variant)

        cart = self.get()
        line = cart.find_line(product_id, variant)
        if line is None:
            return cart

        line.quantity = min(quantity, self.max_quantity)
        return self._save(cart)

    def remove_item(self, product_id: str, variant=None) -> Cart:
        cart = self.get()
        line = cart.find_line(product_id, variant)
        if line is None:
            return cart

        logger.info(f"Guest cart: removing {product_id}")
        cart.items.remove(line)
        return self._save(cart)

    def clear(self) -> Cart:
        cart = Cart.empty(OwnerMode.GUEST, self.currency)
        self._cart = cart
        persisted = self._persist(None)
        self.events.publish(CartEvent(CART_CLEARED, cart.model_copy(deep=True), persisted=persisted))
        return cart.model_copy(deep=True)

    def apply_coupon(self, code: str) -> Cart:
        cart = self.get()
        #InvalidCoupon leci przed jakakolwiek zmiana
        coupon = self.coupon_engine.apply(code, self._base_totals(cart))
        # nowy kod zastepuje poprzedni, ten sam kod liczy sie od nowa
        cart.applied_coupons = [coupon]
        return self._save(cart)

    def remove_coupon(self, code: str) -> Cart:
        cart = self.get()
        code = clean_code(code)
        cart.applied_coupons = [c for c in cart.applied_coupons if c.code != code]
        return self._save(cart)

    # =====================================================
    # helpers
    # =====================================================
    def _new_line(self, item: ItemIn) -> CartItem:
        price = max(to_decimal(item.price), ZERO)
        return CartItem(
            id=line_id(item.product_id, item.variant),
            product_id=item.product_id,
            name=item.name,
            sku=item.sku,
            unit_price=price,
            quantity=min(item.quantity, self.max_quantity),
            variant=item.variant,
            image_ref=item.image,
            display=ProductSnapshot(name=item.name, price=price, image=item.image),
        )

    def _base_totals(self, cart: Cart):
        return compute(cart.items, ZERO, self.tax_rate, self.shipping_policy, self.currency)

    def _recalculate(self, cart: Cart) -> None:
        base = self._base_totals(cart)

        coupons = []
        for applied in cart.applied_coupons:
            try:
                coupons.append(self.coupon_engine.apply(applied.code, base))
            except InvalidCoupon as e:
                logger.info(f"Guest cart: dropping coupon {applied.code}: {e.message}")

        discount = sum((c.computed_discount for c in coupons), ZERO)
        cart.applied_coupons = coupons
        cart.totals = compute(cart.items, discount, self.tax_rate, self.shipping_policy, self.currency)
        cart.last_activity = datetime.now(timezone.utc)

    def _save(self, cart: Cart) -> Cart:
        self._recalculate(cart)
        self._cart = cart
        persisted = self._persist(self._serialize(cart))
        self.events.publish(CartEvent(CART_CHANGED, cart.model_copy(deep=True), persisted=persisted))
        return cart.model_copy(deep=True)

    def _persist(self, payload: str | None) -> bool:
        try:
            if payload is None:
                self.storage.delete(self.key, origin=self.instance_id)
            else:
                self.storage.save(self.key, payload, origin=self.instance_id)
        except StorageError as e:
            logger.error(f"Guest cart not persisted, keeping in-memory copy: {e}")
            self.last_persist_error = e
            return False

        self.last_persist_error = None
        return True

    @staticmethod
    def _serialize(cart: Cart) -> str:
        payload = cart.model_dump(
            mode="json",
            by_alias=True,
            include={"items", "totals", "applied_coupons"},
        )
        payload["updatedAt"] = cart.last_activity.isoformat() if cart.last_activity else None
        return json.dumps(payload)

    def _on_storage_change(self, key: str, origin: str | None) -> None:
        if origin == self.instance_id:
            return

        logger.info(f"Guest cart changed by another instance ({origin}), dropping in-memory copy")
        self._cart = None
        self.events.publish(CartEvent(CART_CHANGED, None, source="remote"))
