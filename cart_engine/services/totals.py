# cart_engine/services/totals.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from cart_engine.domain.schemas import Cart, CartItem, CartSummary, Totals
from cart_engine.utils.money import ZERO, money, to_decimal
from cart_engine.utils.settings import (
    CURRENCY,
    DEFAULT_SHIPPING_COST,
    EXPRESS_SHIPPING_MULTIPLIER,
    FREE_SHIPPING_THRESHOLD,
    TAX_RATE,
)

DEFAULT_TAX_RATE = to_decimal(TAX_RATE)


@dataclass(frozen=True)
class ShippingPolicy:
    free_shipping_threshold: Decimal = to_decimal(FREE_SHIPPING_THRESHOLD)
    default_cost: Decimal = to_decimal(DEFAULT_SHIPPING_COST)
    express: bool = False
    express_multiplier: int = EXPRESS_SHIPPING_MULTIPLIER

    def cost_for(self, subtotal: Decimal) -> Decimal:
        if subtotal >= self.free_shipping_threshold:
            return ZERO
        cost = self.default_cost * self.express_multiplier if self.express else self.default_cost
        return money(cost)


def compute(
    items: Iterable[CartItem],
    discount: Decimal = ZERO,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
    shipping_policy: ShippingPolicy = ShippingPolicy(),
    currency: str = CURRENCY,
) -> Totals:
    """
    Liczy sumy koszyka. Czysta funkcja: te same dane -> te same Totals.

    subtotal zaokraglany raz, na koncu (nie per pozycja).
    total = subtotal - discount + tax + shipping
    """
    items = list(items)

    subtotal = money(sum((i.unit_price * i.quantity for i in items), ZERO))
    discount = max(money(discount), ZERO)
    tax = money(max(subtotal - discount, ZERO) * to_decimal(tax_rate))
    shipping = shipping_policy.cost_for(subtotal)

    return Totals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=subtotal - discount + tax + shipping,
        item_count=sum(i.quantity for i in items),
        unique_item_count=len(items),
        currency=currency,
    )


def summarize(cart: Cart, shipping_policy: ShippingPolicy = ShippingPolicy()) -> CartSummary:
    """Podsumowanie koszyka dla UI (licznik, pasek darmowej dostawy, kupony)."""
    totals = cart.totals
    threshold = money(shipping_policy.free_shipping_threshold)
    qualifies = totals.subtotal >= threshold

    return CartSummary(
        item_count=totals.item_count,
        unique_item_count=totals.unique_item_count,
        subtotal=totals.subtotal,
        tax=totals.tax,
        shipping=totals.shipping,
        discount=totals.discount,
        total=totals.total,
        currency=totals.currency,
        is_empty=cart.is_empty,
        has_shipping=totals.shipping > 0,
        qualifies_for_free_shipping=qualifies,
        free_shipping_threshold=threshold,
        amount_for_free_shipping=None if qualifies else threshold - totals.subtotal,
        applied_coupons=[c.code for c in cart.applied_coupons],
    )
