# cart_engine/services/normalizer.py
import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from cart_engine.domain.schemas import (
    Cart,
    CartItem,
    Coupon,
    CouponKind,
    OwnerMode,
    ProductSnapshot,
    Totals,
    line_id,
)
from cart_engine.utils.money import ZERO, money, to_decimal
from cart_engine.utils.settings import CURRENCY, MAX_QUANTITY_PER_ITEM
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

_COUPON_KINDS = {
    "percentage": CouponKind.PERCENTAGE,
    "fixed": CouponKind.FIXED,
    "freeshipping": CouponKind.FREE_SHIPPING,
    "free_shipping": CouponKind.FREE_SHIPPING,
    "shipping": CouponKind.FREE_SHIPPING,
}


def normalize(
    raw: Any,
    owner_mode: OwnerMode = OwnerMode.GUEST,
    currency: str = CURRENCY,
    max_quantity: int = MAX_QUANTITY_PER_ITEM,
) -> Cart:
    """
    Sprowadza dowolny ksztalt odpowiedzi do jednego Cart.

    Obslugiwane wejscia:
    - koperta {status, data: {cart}} albo {data: {items, totals}}
    - bezposredni obiekt {items, totals} (np. JSON z guest storage, takze jako str)
    - juz znormalizowany Cart
    - None / smieci -> pusty koszyk

    Nigdy nie rzuca wyjatku.
    """
    try:
        body = _unwrap(raw)
        if body is None:
            return Cart.empty(owner_mode, currency)
        return _build_cart(body, owner_mode, currency, max_quantity)
    except Exception:
        logger.warning("Could not normalize cart payload, falling back to empty cart", exc_info=True)
        return Cart.empty(owner_mode, currency)


def _unwrap(raw: Any) -> Mapping | None:
    if isinstance(raw, Cart):
        raw = raw.model_dump(mode="json", by_alias=True)
    elif isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None

    if not isinstance(raw, Mapping):
        return None

    if raw.get("status") == "error":
        return None

    # {status, data: {cart}} albo {data: {items...}}
    data = raw.get("data")
    if isinstance(data, Mapping):
        cart = data.get("cart")
        return cart if isinstance(cart, Mapping) else data

    cart = raw.get("cart")
    if isinstance(cart, Mapping):
        return cart

    return raw


def _build_cart(body: Mapping, owner_mode: OwnerMode, currency: str, max_quantity: int) -> Cart:
    items = _normalize_items(body.get("items"), max_quantity)

    raw_totals = body.get("totals")
    has_totals = isinstance(raw_totals, Mapping)
    if not has_totals:
        # plaski ksztalt {subtotal, tax, ...} albo brak sum
        raw_totals = body

    def pick(*names):
        for name in names:
            if raw_totals.get(name) is not None:
                return raw_totals[name]
        return None

    if has_totals or pick("subtotal") is not None:
        subtotal = money(pick("subtotal"))
    else:
        # brak sum z serwera -> liczymy sami z pozycji
        subtotal = money(sum((i.unit_price * i.quantity for i in items), ZERO))

    discount = money(pick("discount", "discounts"))
    tax = money(pick("tax"))
    shipping = money(pick("shipping"))
    total = subtotal - discount + tax + shipping

    reported = pick("total")
    if reported is not None and money(reported) != total:
        logger.warning(
            f"Cart total drift: payload reported {money(reported)}, "
            f"components give {total} (subtotal={subtotal}, discount={discount}, "
            f"tax={tax}, shipping={shipping})"
        )

    totals = Totals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=total,
        item_count=sum(i.quantity for i in items),
        unique_item_count=len(items),
        currency=str(pick("currency") or body.get("currency") or currency),
    )

    return Cart(
        owner_mode=owner_mode,
        items=items,
        totals=totals,
        applied_coupons=_normalize_coupons(body.get("appliedCoupons", body.get("applied_coupons"))),
        last_activity=_parse_timestamp(body.get("lastActivity", body.get("updatedAt"))),
    )


def _normalize_items(raw_items: Any, max_quantity: int) -> list[CartItem]:
    if not isinstance(raw_items, list):
        return []

    #scalamy duplikaty (productId, variant), kolejnosc wstawiania zachowana
    lines: dict[tuple[str, str], CartItem] = {}
    for raw_item in raw_items:
        item = _normalize_item(raw_item, max_quantity)
        if item is None:
            continue
        existing = lines.get(item.key)
        if existing:
            existing.quantity = min(existing.quantity + item.quantity, max_quantity)
        else:
            lines[item.key] = item
    return list(lines.values())


def _normalize_item(raw: Any, max_quantity: int) -> CartItem | None:
    if not isinstance(raw, Mapping):
        return None

    product = raw.get("product")
    display_raw = raw.get("display")
    product_id = raw.get("productId", raw.get("product_id"))

    # product moze byc obiektem (populate) -> splaszczamy do id + migawki
    if isinstance(product, Mapping):
        if product_id is None:
            product_id = product.get("_id", product.get("id"))
        if not isinstance(display_raw, Mapping):
            display_raw = product
    elif product_id is None:
        product_id = product

    if product_id is None or str(product_id).strip() == "":
        return None
    product_id = str(product_id)

    variant = raw.get("variant")
    display = _snapshot(display_raw) if isinstance(display_raw, Mapping) else None

    price = to_decimal(raw.get("unitPrice", raw.get("price")))
    if price < 0:
        price = ZERO

    return CartItem(
        id=str(raw.get("id") or raw.get("_id") or line_id(product_id, variant)),
        product_id=product_id,
        name=str(raw.get("name") or (display.name if display else "")),
        sku=str(raw.get("sku") or ""),
        unit_price=price,
        quantity=_to_quantity(raw.get("quantity"), max_quantity),
        variant=variant,
        image_ref=_image_ref(raw.get("imageRef", raw.get("image"))),
        display=display,
    )


def _to_quantity(value: Any, max_quantity: int) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return min(max(quantity, 1), max_quantity)


def _image_ref(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        url = value.get("url")
        return str(url) if url else None
    if isinstance(value, list) and value:
        return _image_ref(value[0])
    return None


def _snapshot(raw: Mapping) -> ProductSnapshot:
    price = to_decimal(raw.get("price"))
    return ProductSnapshot(
        name=str(raw.get("name") or ""),
        price=price if price >= 0 else ZERO,
        image=_image_ref(raw.get("image", raw.get("images"))),
    )


def _normalize_coupons(raw: Any) -> list[Coupon]:
    if not isinstance(raw, list):
        return []

    coupons: dict[str, Coupon] = {}
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        code = str(entry.get("code") or "").strip().upper()
        kind = _COUPON_KINDS.get(str(entry.get("kind") or entry.get("type") or "").lower())
        if not code or kind is None:
            continue
        coupons[code] = Coupon(
            code=code,
            kind=kind,
            computed_discount=money(entry.get("computedDiscount", entry.get("discount"))),
        )
    return list(coupons.values())


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None
