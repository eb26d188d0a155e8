from dataclasses import dataclass
from typing import Iterable
from services.coupons import CartLine
from services.shipping import ShippingSettings, STANDARD, compute_shipping, compute_tax
from utils import from_minor

# Orders never total less than one rupee.
MINIMUM_TOTAL = 100


@dataclass(frozen=True)
class PriceBreakdown:
    """
    The priced summary of an order, all values in paise.
    """
    items_price: int
    shipping_price: int
    tax_price: int
    coupon_discount: int
    total_price: int

    def to_json(self) -> dict:
        return {
            "itemsPrice": from_minor(self.items_price),
            "shippingPrice": from_minor(self.shipping_price),
            "taxPrice": from_minor(self.tax_price),
            "couponDiscount": from_minor(self.coupon_discount),
            "totalPrice": from_minor(self.total_price),
        }


def items_price(lines: Iterable[CartLine]) -> int:
    return sum(line.qty * line.price for line in lines)


def assemble(lines: Iterable[CartLine], config: ShippingSettings, coupon_discount: int = 0,
             method: str = STANDARD) -> PriceBreakdown:
    """
    Combines items, shipping, tax and discount into the final breakdown.

    Tax is levied on the items price alone, and the total is floored at
    MINIMUM_TOTAL.
    """
    subtotal = items_price(lines)
    shipping = compute_shipping(subtotal, config, method)
    tax = compute_tax(subtotal, config)
    raw_total = subtotal + shipping + tax - coupon_discount
    return PriceBreakdown(
        items_price=subtotal,
        shipping_price=shipping,
        tax_price=tax,
        coupon_discount=coupon_discount,
        total_price=max(raw_total, MINIMUM_TOTAL),
    )
