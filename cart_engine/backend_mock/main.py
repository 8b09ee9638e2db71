# backend_mock/main.py
from fastapi import Body, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from cart_engine.domain.errors import InvalidCoupon
from cart_engine.domain.schemas import Cart, ItemIn
from cart_engine.repos.storage import MemoryStorage
from cart_engine.services.guest_cart_store import GuestCartStore
from cart_engine.utils.money import money
from cart_engine.utils.settings import MAX_QUANTITY_PER_ITEM

app = FastAPI(title="Cart Backend (dev mock)")

# token -> koszyk konta; liczony tym samym kodem sum i kuponow co koszyk goscia
CARTS: dict[str, GuestCartStore] = {}
REVOKED_TOKENS: set[str] = set()
# kody HTTP do zwrocenia w kolejnych requestach (testy awarii)
FAIL_NEXT: list[int] = []


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message


@app.exception_handler(ApiError)
def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content={"status": "error", "message": exc.message})


def reset() -> None:
    CARTS.clear()
    REVOKED_TOKENS.clear()
    FAIL_NEXT.clear()


def current_account(authorization: str | None = Header(default=None)) -> str:
    if FAIL_NEXT:
        raise ApiError(FAIL_NEXT.pop(0), "Injected failure")

    token = (authorization or "").removeprefix("Bearer ").strip()
    if not token or token in REVOKED_TOKENS:
        raise ApiError(401, "Not authorized, please log in")
    return token


def _existing_cart(account: str) -> GuestCartStore:
    store = CARTS.get(account)
    if store is None:
        raise ApiError(404, "Cart not found")
    return store


def _envelope(cart: Cart, status_code: int = 200, **extra) -> JSONResponse:
    data = {"cart": cart.model_dump(mode="json", by_alias=True), **extra}
    return JSONResponse(status_code=status_code, content={"status": "success", "data": data})


@app.get("/cart")
def get_cart(account: str = Depends(current_account)):
    # koszyk tworzony leniwie przy pierwszym odczycie
    store = CARTS.setdefault(account, GuestCartStore(MemoryStorage()))
    return _envelope(store.get())


@app.post("/cart/items")
def add_item(body: dict = Body(...), account: str = Depends(current_account)):
    product_id = body.get("productId")
    quantity = body.get("quantity", 1)
    if not product_id:
        raise ApiError(400, "Product ID is required")
    if not isinstance(quantity, int) or quantity < 1:
        raise ApiError(400, "Quantity must be at least 1")
    if quantity > MAX_QUANTITY_PER_ITEM:
        raise ApiError(400, f"Quantity cannot exceed {MAX_QUANTITY_PER_ITEM}")

    store = CARTS.setdefault(account, GuestCartStore(MemoryStorage()))
    item = ItemIn(
        product_id=str(product_id),
        quantity=quantity,
        variant=body.get("variant"),
        name=body.get("name") or "",
        price=money(body.get("price")),
        sku=body.get("sku") or "",
        image=body.get("image"),
    )
    return _envelope(store.add_item(item), status_code=201)


@app.patch("/cart/items/{product_id}")
def update_item(product_id: str, body: dict = Body(...), account: str = Depends(current_account)):
    quantity = body.get("quantity")
    if not isinstance(quantity, int) or quantity < 0:
        raise ApiError(400, "Quantity cannot be negative")

    store = _existing_cart(account)
    return _envelope(store.update_item(product_id, quantity, body.get("variant")))


@app.delete("/cart/items/{product_id}")
def remove_item(product_id: str, body: dict | None = Body(default=None), account: str = Depends(current_account)):
    store = _existing_cart(account)
    return _envelope(store.remove_item(product_id, (body or {}).get("variant")))


@app.delete("/cart")
def clear_cart(account: str = Depends(current_account)):
    store = _existing_cart(account)
    return _envelope(store.clear())


@app.post("/cart/coupon")
def apply_coupon(body: dict = Body(...), account: str = Depends(current_account)):
    code = body.get("code")
    if not code:
        raise ApiError(400, "Coupon code is required")

    store = _existing_cart(account)
    try:
        cart = store.apply_coupon(code)
    except InvalidCoupon as e:
        raise ApiError(400, e.message)

    applied = next((c for c in cart.applied_coupons if c.code == code.strip().upper()), None)
    savings = applied.computed_discount if applied else money(None)
    return _envelope(cart, savings=str(savings))


@app.delete("/cart/coupon/{code}")
def remove_coupon(code: str, account: str = Depends(current_account)):
    store = _existing_cart(account)
    return _envelope(store.remove_coupon(code))
