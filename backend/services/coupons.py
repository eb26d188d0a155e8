import json
import uuid
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Union
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from schema import DiscountCoupon, Product
from services.errors import ValidationError, NotFound
from utils import to_minor, format_amount, parse_timestamp, utcnow

logger = logging.getLogger(__name__)


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class CouponState(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    USAGE_EXHAUSTED = "USAGE_EXHAUSTED"
    SCOPE_MISMATCH = "SCOPE_MISMATCH"
    VALID = "VALID"


REJECTION_MESSAGES = {
    CouponState.NOT_FOUND: "Invalid coupon code",
    CouponState.INACTIVE: "Coupon is not active",
    CouponState.NOT_YET_VALID: "Coupon is not yet valid",
    CouponState.EXPIRED: "Coupon has expired",
    CouponState.USAGE_EXHAUSTED: "Coupon usage limit reached",
    CouponState.SCOPE_MISMATCH: "Coupon is not applicable to any items in your cart",
    CouponState.VALID: "Coupon applied successfully",
}


@dataclass(frozen=True)
class AllItems:
    pass


@dataclass(frozen=True)
class CategoryScope:
    categories: FrozenSet[str]


@dataclass(frozen=True)
class ProductScope:
    products: FrozenSet[str]


Scope = Union[AllItems, CategoryScope, ProductScope]

SCOPE_MODES = ("ALL", "SPECIFIC_CATEGORIES", "SPECIFIC_PRODUCTS")


def scope_of(coupon: DiscountCoupon) -> Scope:
    """Builds the scope variant from the stored mode and id lists."""
    if coupon.applicable_to == "SPECIFIC_CATEGORIES":
        return CategoryScope(frozenset(json.loads(coupon.applicable_categories or "[]")))
    if coupon.applicable_to == "SPECIFIC_PRODUCTS":
        return ProductScope(frozenset(json.loads(coupon.applicable_products or "[]")))
    return AllItems()


@dataclass(frozen=True)
class CartLine:
    """A priced cart or order line. `price` is the unit price in paise."""
    qty: int
    price: int
    product_id: Optional[str] = None
    category_id: Optional[str] = None
    name: str = ""


def item_identifiers(item: dict, label: str = "cartItems entries"):
    """
    Product and category ids of a cart or order item payload.

    Product ids may be strings or integers; categories must be strings.

    Raises:
        ValidationError: If either identifier has another type.
    """
    product_id = item.get("product") or item.get("_id")
    if product_id is not None and (isinstance(product_id, bool) or not isinstance(product_id, (str, int))):
        raise ValidationError(f"{label} must have a string product")
    category_id = item.get("category")
    if category_id is not None and not isinstance(category_id, str):
        raise ValidationError(f"{label} must have a string category")
    return (str(product_id) if product_id is not None else None), category_id


@dataclass(frozen=True)
class Evaluation:
    state: CouponState
    message: str
    coupon: Optional[DiscountCoupon] = None
    discount: int = 0

    @property
    def valid(self) -> bool:
        return self.state is CouponState.VALID

    @property
    def http_status(self) -> int:
        if self.state is CouponState.NOT_FOUND:
            return 404
        return 200 if self.valid else 400


def normalize_code(code) -> str:
    return str(code).strip().upper()


def _round_paise(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_discount(order_amount: int, coupon: DiscountCoupon) -> int:
    """
    Discount in paise for an order amount in paise.

    PERCENTAGE coupons take `discount_value` percent of the amount, capped at
    `maximum_discount_amount` when one is set. FIXED_AMOUNT coupons take their
    face value but never more than the order amount.
    """
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = _round_paise(Decimal(order_amount) * Decimal(str(coupon.discount_value)) / 100)
        if coupon.maximum_discount_amount is not None and discount > coupon.maximum_discount_amount:
            discount = coupon.maximum_discount_amount
        return discount
    if coupon.discount_type == DiscountType.FIXED_AMOUNT.value:
        return min(to_minor(coupon.discount_value), order_amount)
    return 0


def _reject(state: CouponState, coupon=None, message: str = None) -> Evaluation:
    return Evaluation(state=state, message=message or REJECTION_MESSAGES[state], coupon=coupon)


def check_coupon(coupon: Optional[DiscountCoupon], order_amount: int, lines: Iterable[CartLine], now) -> Evaluation:
    """
    Runs the applicability checks in order; the first failing check wins.

    Args:
        coupon: The looked-up coupon, or None when the code matched nothing.
        order_amount: Amount the discount is computed against, in paise.
        lines: Cart lines with categories already resolved.
        now: Naive UTC evaluation time.

    Returns:
        An Evaluation; only a VALID one carries a discount.
    """
    if coupon is None:
        return _reject(CouponState.NOT_FOUND)
    if coupon.is_active is False:
        return _reject(CouponState.INACTIVE, coupon)
    if now < coupon.valid_from:
        return _reject(CouponState.NOT_YET_VALID, coupon)
    if now > coupon.valid_until:
        return _reject(CouponState.EXPIRED, coupon)
    minimum = coupon.minimum_order_amount or 0
    if order_amount < minimum:
        return _reject(
            CouponState.BELOW_MINIMUM,
            coupon,
            f"Minimum order amount of {format_amount(minimum)} required",
        )
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return _reject(CouponState.USAGE_EXHAUSTED, coupon)

    scope = scope_of(coupon)
    if isinstance(scope, CategoryScope):
        if not any(line.category_id in scope.categories for line in lines):
            return _reject(CouponState.SCOPE_MISMATCH, coupon)
    elif isinstance(scope, ProductScope):
        if not any(line.product_id in scope.products for line in lines):
            return _reject(CouponState.SCOPE_MISMATCH, coupon)

    return Evaluation(
        state=CouponState.VALID,
        message=REJECTION_MESSAGES[CouponState.VALID],
        coupon=coupon,
        discount=calculate_discount(order_amount, coupon),
    )


def _active_clause():
    # Rows written before the flag existed have NULL and count as active
    return or_(DiscountCoupon.is_active.is_(True), DiscountCoupon.is_active.is_(None))


class CouponEvaluator:
    """
    Looks coupons up by code and decides whether they apply to a cart.
    """
    def __init__(self, db):
        self.db = db

    def find_active(self, code) -> Optional[DiscountCoupon]:
        return (
            self.db.query(DiscountCoupon)
            .filter(DiscountCoupon.code == normalize_code(code))
            .filter(_active_clause())
            .first()
        )

    def resolve_categories(self, lines: List[CartLine]) -> List[CartLine]:
        """
        Fills in the category of lines that only name a product, using the catalog.
        """
        missing = {l.product_id for l in lines if l.category_id is None and l.product_id}
        if not missing:
            return lines
        categories = dict(
            self.db.query(Product.product_id, Product.category_id)
            .filter(Product.product_id.in_(missing))
            .all()
        )
        return [
            CartLine(
                qty=l.qty,
                price=l.price,
                product_id=l.product_id,
                category_id=l.category_id if l.category_id is not None else categories.get(l.product_id),
                name=l.name,
            )
            for l in lines
        ]

    def evaluate(self, code, order_amount: int, lines: List[CartLine], now=None) -> Evaluation:
        """
        Evaluates a code against an order amount and cart. Never mutates the coupon.
        """
        now = now or utcnow()
        coupon = self.find_active(code)
        evaluation = check_coupon(coupon, order_amount, self.resolve_categories(lines), now)
        if not evaluation.valid:
            logger.info("Coupon %s rejected: %s", normalize_code(code), evaluation.state.value)
        return evaluation

    def list_public(self, order_amount: Optional[int] = None, now=None) -> List[DiscountCoupon]:
        """
        Active, unexpired coupons, newest first. With an order amount, only
        coupons whose minimum it meets are returned.
        """
        now = now or utcnow()
        coupons = (
            self.db.query(DiscountCoupon)
            .filter(_active_clause())
            .filter(DiscountCoupon.valid_until > now)
            .order_by(DiscountCoupon.created_at.desc())
            .all()
        )
        if order_amount is not None:
            coupons = [c for c in coupons if order_amount >= (c.minimum_order_amount or 0)]
        return coupons


def _optional_money(name, value):
    if value is None:
        return None
    try:
        parsed = to_minor(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if parsed < 0:
        raise ValidationError(f"{name} must not be negative")
    return parsed


def _id_list(name, value):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{name} must be a list of ids")
    return sorted(set(value))


def apply_coupon_fields(db, coupon: DiscountCoupon, data: dict, creating: bool) -> DiscountCoupon:
    """
    Validates an admin payload and copies it onto a coupon row.

    On create, code, description, discountType, discountValue and validUntil
    are required. On update, only supplied keys change.

    Raises:
        ValidationError: On a missing or malformed field or a duplicate code.
    """
    if creating:
        for name in ("code", "description", "discountType", "discountValue", "validUntil"):
            if data.get(name) in (None, ""):
                raise ValidationError(f"{name} is required")

    if data.get("code") is not None:
        code = normalize_code(data["code"])
        if not code:
            raise ValidationError("code is required")
        if code != coupon.code:
            clash = db.query(DiscountCoupon).filter_by(code=code).first()
            if clash is not None:
                raise ValidationError("Coupon code already exists")
            coupon.code = code

    if data.get("description"):
        coupon.description = data["description"]

    if data.get("discountType"):
        if data["discountType"] not in DiscountType.__members__:
            raise ValidationError("discountType must be PERCENTAGE or FIXED_AMOUNT")
        coupon.discount_type = data["discountType"]

    if data.get("discountValue") is not None:
        value = data["discountValue"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("discountValue must be a number")
        if value < 0:
            raise ValidationError("discountValue must not be negative")
        coupon.discount_value = float(value)

    if coupon.discount_type == DiscountType.PERCENTAGE.value and coupon.discount_value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")

    if "minimumOrderAmount" in data:
        coupon.minimum_order_amount = _optional_money("minimumOrderAmount", data["minimumOrderAmount"]) or 0
    elif creating:
        coupon.minimum_order_amount = 0

    if "maximumDiscountAmount" in data:
        coupon.maximum_discount_amount = _optional_money("maximumDiscountAmount", data["maximumDiscountAmount"])

    if "usageLimit" in data:
        limit = data["usageLimit"]
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
            raise ValidationError("usageLimit must be a non-negative integer")
        coupon.usage_limit = limit

    try:
        if data.get("validFrom"):
            coupon.valid_from = parse_timestamp(data["validFrom"])
        elif creating:
            coupon.valid_from = utcnow()
        if data.get("validUntil"):
            coupon.valid_until = parse_timestamp(data["validUntil"])
    except ValueError:
        raise ValidationError("validFrom and validUntil must be ISO-8601 timestamps")
    if coupon.valid_until <= coupon.valid_from:
        raise ValidationError("validUntil must be after validFrom")

    if data.get("applicableTo"):
        if data["applicableTo"] not in SCOPE_MODES:
            raise ValidationError("applicableTo must be one of " + ", ".join(SCOPE_MODES))
        coupon.applicable_to = data["applicableTo"]
    elif creating:
        coupon.applicable_to = "ALL"

    if "applicableCategories" in data or creating:
        coupon.applicable_categories = json.dumps(_id_list("applicableCategories", data.get("applicableCategories")))
    if "applicableProducts" in data or creating:
        coupon.applicable_products = json.dumps(_id_list("applicableProducts", data.get("applicableProducts")))

    if "isActive" in data:
        if not isinstance(data["isActive"], bool):
            raise ValidationError("isActive must be a boolean")
        coupon.is_active = data["isActive"]

    coupon.updated_at = utcnow()
    return coupon


def create_coupon(db, data: dict, created_by: str) -> DiscountCoupon:
    now = utcnow()
    coupon = DiscountCoupon(
        coupon_id=str(uuid.uuid4()),
        used_count=0,
        is_active=True,
        created_by=created_by,
        created_at=now,
    )
    apply_coupon_fields(db, coupon, data, creating=True)
    db.add(coupon)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Coupon code already exists")
    logger.info("Coupon %s created by %s", coupon.code, created_by)
    return coupon


def get_coupon_or_404(db, coupon_id: str) -> DiscountCoupon:
    coupon = db.get(DiscountCoupon, coupon_id)
    if coupon is None:
        raise NotFound("Coupon not found")
    return coupon
