# cart_engine/domain/schemas.py
import json
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cart_engine.utils.money import ZERO
from cart_engine.utils.settings import CURRENCY


class OwnerMode(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class CouponKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "freeShipping"


class CamelModel(BaseModel):
    """Wspolna konfiguracja: camelCase na drucie i w storage, snake_case w kodzie."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def line_key(product_id: Any, variant: Any) -> tuple[str, str]:
    """Tozsamosc linii koszyka: (productId, variant). Wariant porownywany jako kanoniczny JSON."""
    return str(product_id), json.dumps(variant, sort_keys=True, default=str)


def line_id(product_id: Any, variant: Any) -> str:
    # deterministyczne id, zeby normalizacja byla idempotentna
    return uuid.uuid5(uuid.NAMESPACE_URL, "|".join(line_key(product_id, variant))).hex


class ProductSnapshot(CamelModel):
    """Dane produktu tylko do wyswietlania, nigdy do liczenia ceny."""

    name: str = ""
    price: Decimal = ZERO
    image: str | None = None


class CartItem(CamelModel):
    id: str
    product_id: str
    name: str = ""
    sku: str = ""
    unit_price: Decimal = Field(default=ZERO, ge=0)
    quantity: int = Field(default=1, ge=1)
    variant: Any = None
    image_ref: str | None = None
    display: ProductSnapshot | None = None

    @property
    def key(self) -> tuple[str, str]:
        return line_key(self.product_id, self.variant)


class Totals(CamelModel):
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO
    item_count: int = 0
    unique_item_count: int = 0
    currency: str = CURRENCY


class Coupon(CamelModel):
    code: str
    kind: CouponKind
    computed_discount: Decimal = ZERO


class Cart(CamelModel):
    owner_mode: OwnerMode = OwnerMode.GUEST
    items: List[CartItem] = Field(default_factory=list)
    totals: Totals = Field(default_factory=Totals)
    applied_coupons: List[Coupon] = Field(default_factory=list)
    last_activity: datetime | None = None

    @classmethod
    def empty(cls, owner_mode: OwnerMode = OwnerMode.GUEST, currency: str = CURRENCY) -> "Cart":
        return cls(owner_mode=owner_mode, totals=Totals(currency=currency))

    def find_line(self, product_id: Any, variant: Any = None) -> CartItem | None:
        key = line_key(product_id, variant)
        return next((i for i in self.items if i.key == key), None)

    @property
    def is_empty(self) -> bool:
        return not self.items


# =====================================================
# wejscie (UI / storefront API)
# =====================================================
class ItemIn(CamelModel):
    """Produkt dodawany do koszyka."""

    product_id: str
    quantity: int = 1
    variant: Any = None
    name: str = ""
    price: Decimal = ZERO
    sku: str = ""
    image: str | None = None


class QuantityIn(CamelModel):
    quantity: int
    variant: Any = None


class VariantIn(CamelModel):
    variant: Any = None


class CouponIn(CamelModel):
    code: str


class LoginIn(CamelModel):
    token: str


# =====================================================
# wyjscie
# =====================================================
class CartResult(CamelModel):
    """Wynik operacji na koszyku.

    authoritative=False oznacza migawke do wyswietlenia (np. serwer nie odpowiada),
    degraded=True oznacza, ze operacja wykonala sie na koszyku goscia po utracie sesji.
    """

    cart: Cart
    authoritative: bool = True
    degraded: bool = False
    message: str | None = None
    savings: Decimal | None = None


class CartSummary(CamelModel):
    item_count: int = 0
    unique_item_count: int = 0
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO
    currency: str = CURRENCY
    is_empty: bool = True
    has_shipping: bool = False
    qualifies_for_free_shipping: bool = False
    free_shipping_threshold: Decimal = ZERO
    amount_for_free_shipping: Decimal | None = None
    applied_coupons: List[str] = Field(default_factory=list)


class SyncReport(CamelModel):
    synced: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    skipped: bool = False


class SessionOut(CamelModel):
    authenticated: bool
    sync: SyncReport | None = None
