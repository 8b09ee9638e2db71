# cart_engine/services/coupons.py
from dataclasses import dataclass
from decimal import Decimal

from cart_engine.domain.errors import InvalidCoupon
from cart_engine.domain.schemas import Coupon, CouponKind, Totals
from cart_engine.utils.money import ZERO, money


@dataclass(frozen=True)
class CouponRule:
    kind: CouponKind
    rate: Decimal = ZERO  # percentage
    amount: Decimal = ZERO  # fixed


#stala tabela kuponow, nie ma tu magazynu kuponow
DEFAULT_RULES: dict[str, CouponRule] = {
    "SAVE10": CouponRule(CouponKind.PERCENTAGE, rate=Decimal("0.10")),
    "NEWUSER": CouponRule(CouponKind.FIXED, amount=Decimal("500")),
    "FREESHIP": CouponRule(CouponKind.FREE_SHIPPING),
}


def clean_code(code: str | None) -> str:
    return (code or "").strip().upper()


class CouponEngine:
    """
    Walidacja kodu i wyliczenie rabatu na podstawie biezacych sum.
    Niezalezny od storage; jeden kupon na koszyk (nowy kod zastepuje stary).
    """

    def __init__(self, rules: dict[str, CouponRule] | None = None):
        self.rules = dict(DEFAULT_RULES if rules is None else rules)

    def apply(self, code: str, current_totals: Totals) -> Coupon:
        code = clean_code(code)
        rule = self.rules.get(code)

        if rule is None:
            raise InvalidCoupon("Invalid coupon code")

        if current_totals.item_count <= 0:
            raise InvalidCoupon("Cannot apply coupon to empty cart")

        subtotal = current_totals.subtotal
        if rule.kind is CouponKind.PERCENTAGE:
            discount = subtotal * rule.rate
        elif rule.kind is CouponKind.FIXED:
            discount = min(rule.amount, subtotal)
        else:
            discount = current_totals.shipping

        return Coupon(code=code, kind=rule.kind, computed_discount=max(money(discount), ZERO))
