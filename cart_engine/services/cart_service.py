# cart_engine/services/cart_service.py
import threading
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError as SchemaError

from cart_engine.domain.errors import CartError, InvalidCoupon, NotFound, ServerError, Unauthorized, ValidationError
from cart_engine.domain.schemas import Cart, CartResult, CartSummary, ItemIn, OwnerMode, SyncReport
from cart_engine.services.cart_gateway import ServerCartGateway
from cart_engine.services.coupons import clean_code
from cart_engine.services.events import CartEvent
from cart_engine.services.guest_cart_store import GuestCartStore
from cart_engine.services.session import AuthSession
from cart_engine.services.totals import summarize
from cart_engine.utils.settings import MAX_CART_ITEMS, MAX_QUANTITY_PER_ITEM
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class CartState(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class Fallback(str, Enum):
    DEGRADE_TO_GUEST = "degrade_to_guest"  # wymuszony logout + jedna proba na koszyku goscia
    EMPTY_CART = "empty_cart"  # brak koszyka na serwerze = pusty koszyk
    SNAPSHOT = "snapshot"  # migawka tylko do wyswietlenia
    RAISE = "raise"


READ = "read"
WRITE = "write"

#tabela decyzji: (rodzaj operacji, klasa bledu) -> co robimy
FALLBACK_POLICY: dict[tuple[str, type], Fallback] = {
    (READ, Unauthorized): Fallback.DEGRADE_TO_GUEST,
    (READ, NotFound): Fallback.EMPTY_CART,
    (READ, ServerError): Fallback.SNAPSHOT,
    (WRITE, Unauthorized): Fallback.DEGRADE_TO_GUEST,
    (WRITE, NotFound): Fallback.EMPTY_CART,
    (WRITE, ServerError): Fallback.RAISE,
}


def decide(kind: str, error: CartError) -> Fallback:
    for cls in type(error).__mro__:
        action = FALLBACK_POLICY.get((kind, cls))
        if action is not None:
            return action
    return Fallback.RAISE


GuestOp = Callable[[GuestCartStore], Cart]
ServerOp = Callable[[ServerCartGateway], Any]


class CartService:
    """
    Jedyne API koszyka dla warstwy UI.

    Stan GUEST -> operacje na GuestCartStore, stan AUTHENTICATED -> ServerCartGateway.
    Po kazdej udanej operacji na serwerze zawsze czytamy caly koszyk od nowa
    (GET /cart), sum nigdy nie skladamy z czesciowej odpowiedzi.

    Operacje sa serializowane (druga czeka na pierwsza). Przejscia login/logout
    i zmiany koszyka goscia z innej karty podbijaja generacje; wynik policzony
    w starej generacji jest odrzucany.
    """

    def __init__(
        self,
        guest_store: GuestCartStore,
        gateway: ServerCartGateway,
        session: AuthSession,
        max_quantity: int = MAX_QUANTITY_PER_ITEM,
        max_unique_items: int = MAX_CART_ITEMS,
    ):
        self.guest_store = guest_store
        self.gateway = gateway
        self.session = session
        self.max_quantity = max_quantity
        self.max_unique_items = max_unique_items
        self.sync_coordinator = None

        self.state = CartState.AUTHENTICATED if session.is_authenticated else CartState.GUEST
        self._cart: Cart | None = None
        self._generation = 0
        self._serial = threading.RLock()
        self._state_lock = threading.RLock()
        self._unsubscribe = guest_store.events.subscribe(self._on_guest_event)

    @property
    def is_authenticated(self) -> bool:
        return self.state is CartState.AUTHENTICATED

    @property
    def cart(self) -> Cart | None:
        """Ostatni potwierdzony koszyk (bez I/O)."""
        with self._state_lock:
            return self._cart.model_copy(deep=True) if self._cart else None

    # =====================================================
    # przejscia stanu
    # =====================================================
    def login(self, token: str) -> SyncReport | None:
        """Guest -> Authenticated, raz na zdarzenie logowania; uruchamia synchronizacje."""
        if not token or not str(token).strip():
            raise ValidationError("Session token is required")

        with self._state_lock:
            if self.state is CartState.AUTHENTICATED:
                # juz zalogowany, tylko nowy token
                self.session.start(token)
                return None
            self.session.start(token)
            self.state = CartState.AUTHENTICATED
            self._generation += 1
            self._cart = None

        logger.info("Cart state guest -> authenticated")
        if self.sync_coordinator is None:
            return None
        return self.sync_coordinator.sync()

    def logout(self) -> None:
        """Authenticated -> Guest. Reset, bez scalania: koszyk zostaje na serwerze."""
        self._transition_to_guest("logout")

    def close(self) -> None:
        """Odpina sie od koszyka goscia i zamyka jego subskrypcje storage."""
        self._unsubscribe()
        self.guest_store.close()

    def _transition_to_guest(self, reason: str) -> int:
        with self._state_lock:
            if self.state is CartState.AUTHENTICATED:
                logger.info(f"Cart state authenticated -> guest ({reason})")
                self.session.end()
                self.state = CartState.GUEST
                self.guest_store.clear()
            self._generation += 1
            self._cart = None
            return self._generation

    def _on_guest_event(self, event: CartEvent) -> None:
        if event.source != "remote":
            return
        with self._state_lock:
            if self.state is CartState.GUEST:
                #inna karta zmienila koszyk goscia - wszystko w locie jest nieaktualne
                self._generation += 1
                self._cart = None

    # =====================================================
    # QUERY
    # =====================================================
    def get(self) -> CartResult:
        with self._serial:
            gen = self._current_generation()
            if self.state is CartState.GUEST:
                return self._commit(gen, CartResult(cart=self.guest_store.get()))
            try:
                cart = self._read_server_cart()
            except CartError as e:
                return self._recover(READ, "get", e, gen, lambda store: store.get())
            return self._commit(gen, CartResult(cart=cart))

    def get_summary(self) -> CartSummary:
        return summarize(self.get().cart, self.guest_store.shipping_policy)

    # =====================================================
    # COMMANDS
    # =====================================================
    def add_item(self, item: ItemIn | dict) -> CartResult:
        item = self._coerce_item(item)
        with self._serial:
            self._validate_add(item)
            return self._mutate(
                "add_item",
                lambda store: store.add_item(item),
                lambda gateway: gateway.add_item(item),
            )

    def update_item(self, product_id: str, quantity: int, variant=None) -> CartResult:
        self._validate_product_id(product_id)
        self._validate_quantity(quantity, minimum=0)

        # ilosc 0 = usuniecie pozycji
        if quantity == 0:
            return self.remove_item(product_id, variant)

        with self._serial:
            return self._mutate(
                "update_item",
                lambda store: store.update_item(product_id, quantity, variant),
                lambda gateway: gateway.update_item(product_id, quantity, variant),
            )

    def remove_item(self, product_id: str, variant=None) -> CartResult:
        self._validate_product_id(product_id)
        with self._serial:
            return self._mutate(
                "remove_item",
                lambda store: store.remove_item(product_id, variant),
                lambda gateway: gateway.remove_item(product_id, variant),
            )

    def clear(self) -> CartResult:
        with self._serial:
            return self._mutate(
                "clear",
                lambda store: store.clear(),
                lambda gateway: gateway.clear(),
            )

    def apply_coupon(self, code: str) -> CartResult:
        code = clean_code(code)
        if not code:
            raise ValidationError("Coupon code is required")

        with self._serial:
            result = self._mutate(
                "apply_coupon",
                lambda store: store.apply_coupon(code),
                lambda gateway: gateway.apply_coupon(code)[1],
            )

        applied = next((c for c in result.cart.applied_coupons if c.code == code), None)
        if applied is None:
            # np. 404 -> pusty koszyk na serwerze; nie zglaszamy sukcesu bez kuponu
            if result.cart.is_empty:
                raise InvalidCoupon("Cannot apply coupon to empty cart")
            raise InvalidCoupon(f'Coupon "{code}" could not be applied')
        if result.savings is None:
            result.savings = applied.computed_discount
        if result.message is None:
            result.message = f'Coupon "{code}" applied'
        return result

    def remove_coupon(self, code: str) -> CartResult:
        code = clean_code(code)
        if not code:
            raise ValidationError("Coupon code is required")

        with self._serial:
            return self._mutate(
                "remove_coupon",
                lambda store: store.remove_coupon(code),
                lambda gateway: gateway.remove_coupon(code),
            )

    # =====================================================
    # wewnetrzne
    # =====================================================
    def _mutate(self, name: str, guest_op: GuestOp, server_op: ServerOp) -> CartResult:
        gen = self._current_generation()

        if self.state is CartState.GUEST:
            return self._commit(gen, CartResult(cart=guest_op(self.guest_store)))

        try:
            outcome = server_op(self.gateway)
            # odpowiedz z samej operacji ignorujemy, czytamy caly koszyk
            cart = self._read_server_cart()
        except CartError as e:
            return self._recover(WRITE, name, e, gen, guest_op)

        logger.info(f"{name} committed on server cart ({cart.totals.unique_item_count} lines)")
        savings = outcome if not isinstance(outcome, Cart) else None
        return self._commit(gen, CartResult(cart=cart, savings=savings))

    def _read_server_cart(self) -> Cart:
        try:
            return self.gateway.get_cart()
        except NotFound:
            # serwer jeszcze nie ma koszyka
            return Cart.empty(OwnerMode.AUTHENTICATED, self.guest_store.currency)

    def _recover(self, kind: str, name: str, error: CartError, gen: int, guest_op: GuestOp) -> CartResult:
        action = decide(kind, error)

        if action is Fallback.DEGRADE_TO_GUEST:
            logger.warning(f"{name}: session rejected by cart API, continuing as guest")
            gen = self._transition_to_guest("unauthorized")
            cart = guest_op(self.guest_store)
            return self._commit(
                gen,
                CartResult(
                    cart=cart,
                    degraded=True,
                    message="Your session has expired. The cart is kept on this device.",
                ),
            )

        if action is Fallback.EMPTY_CART:
            try:
                cart = self._read_server_cart()
            except CartError as e:
                return self._recover(kind, name, e, gen, guest_op)
            return self._commit(gen, CartResult(cart=cart))

        if action is Fallback.SNAPSHOT:
            logger.error(f"{name}: cart API unavailable, serving cached snapshot: {error.message}")
            with self._state_lock:
                snapshot = self._cart.model_copy(deep=True) if self._cart else None
            if snapshot is None:
                snapshot = self.guest_store.get()
            return CartResult(cart=snapshot, authoritative=False, message=error.message)

        if isinstance(error, ServerError):
            logger.error(f"{name} failed: {error.message} (status={error.status_code})")
        else:
            logger.info(f"{name} rejected: {error.message}")
        raise error

    def _current_generation(self) -> int:
        with self._state_lock:
            return self._generation

    def _commit(self, gen: int, result: CartResult) -> CartResult:
        with self._state_lock:
            if gen == self._generation:
                self._cart = result.cart.model_copy(deep=True)
                return result

            logger.info(f"Discarding stale cart result (generation {gen}, current {self._generation})")
            if self.state is CartState.GUEST:
                current = self.guest_store.get()
            else:
                current = self._cart.model_copy(deep=True) if self._cart else None
        if current is None:
            return CartResult(cart=result.cart, authoritative=False, message="Cart changed, please refresh")
        return CartResult(cart=current, authoritative=self.state is CartState.GUEST)

    # =====================================================
    # walidacja (bez I/O)
    # =====================================================
    def _coerce_item(self, item: ItemIn | dict) -> ItemIn:
        if isinstance(item, ItemIn):
            return item
        try:
            return ItemIn.model_validate(item)
        except SchemaError as e:
            raise ValidationError("Invalid product data") from e

    @staticmethod
    def _validate_product_id(product_id) -> None:
        if product_id is None or not str(product_id).strip():
            raise ValidationError("Product ID is required")

    def _validate_quantity(self, quantity, minimum: int = 1) -> None:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or not minimum <= quantity <= self.max_quantity:
            raise ValidationError(f"Quantity must be between {minimum} and {self.max_quantity}")

    def _validate_add(self, item: ItemIn) -> None:
        self._validate_product_id(item.product_id)
        self._validate_quantity(item.quantity)
        if item.price < 0:
            raise ValidationError("Price cannot be negative")

        # limit pozycji sprawdzamy tylko dla nowej linii, na znanym stanie koszyka
        if self.state is CartState.GUEST:
            held = self.guest_store.get()
        else:
            held = self.cart
        if held is None or held.find_line(item.product_id, item.variant) is not None:
            return
        if held.totals.unique_item_count >= self.max_unique_items:
            raise ValidationError(f"Maximum {self.max_unique_items} items allowed in cart.")
