import re
import json
import uuid
import logging
from typing import List, Optional
from sqlalchemy import update, or_
from schema import Order, OrderItem, DiscountCoupon
from services.coupons import (
    CartLine, CouponEvaluator, CouponState, Evaluation, REJECTION_MESSAGES, item_identifiers, normalize_code,
)
from services.errors import ValidationError, NotFound, CouponRejected
from services.pricing import PriceBreakdown, assemble, items_price
from services.shipping import ShippingConfigService, SHIPPING_METHODS, STANDARD
from utils import to_minor, from_minor, format_currency, utcnow

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("Processing", "Shipped", "Delivered", "Cancelled")
ADDRESS_FIELDS = ("street", "city", "state", "postalCode", "country")
POSTAL_CODE = re.compile(r"^\d{6}$")

# Request field -> PriceBreakdown attribute, for checking client-computed prices
CLIENT_PRICE_FIELDS = {
    "itemsPrice": "items_price",
    "shippingPrice": "shipping_price",
    "taxPrice": "tax_price",
    "couponDiscount": "coupon_discount",
    "totalPrice": "total_price",
}


def parse_order_items(raw) -> List[CartLine]:
    """
    Converts `orderItems` / `cartItems` payload entries into priced cart lines.

    Each entry needs `qty` and `price` (rupees); `product` (or `_id`) and
    `category` are optional identifiers.

    Raises:
        ValidationError: If the list is empty or an entry is malformed.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError("No order items")
    lines = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"Order item {index} must be an object")
        qty = item.get("qty")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            raise ValidationError(f"Order item {index} must have a positive integer qty")
        try:
            price = to_minor(item.get("price"))
        except ValueError:
            raise ValidationError(f"Order item {index} must have a numeric price")
        if price < 0:
            raise ValidationError(f"Order item {index} price must not be negative")
        product_id, category_id = item_identifiers(item, f"Order item {index}")
        lines.append(CartLine(
            qty=qty,
            price=price,
            product_id=product_id,
            category_id=category_id,
            name=item.get("name") or "",
        ))
    return lines


def parse_shipping_address(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("shippingAddress is required")
    address = {}
    for field in ADDRESS_FIELDS:
        value = raw.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"shippingAddress.{field} is required")
        address[field] = value.strip()
    if not POSTAL_CODE.match(address["postalCode"]):
        raise ValidationError("Postal code must be 6 digits")
    return address


def requested_coupon_code(data: dict) -> Optional[str]:
    code = data.get("couponCode")
    if not code and isinstance(data.get("coupon"), dict):
        code = data["coupon"].get("code")
    return normalize_code(code) if code else None


def check_client_prices(data: dict, breakdown: PriceBreakdown) -> None:
    """
    Rejects the order if any price the client displayed differs from the
    server's breakdown by even a paisa.
    """
    for field, attr in CLIENT_PRICE_FIELDS.items():
        if data.get(field) is None:
            continue
        try:
            claimed = to_minor(data[field])
        except ValueError:
            raise ValidationError(f"{field} must be a number")
        if claimed != getattr(breakdown, attr):
            logger.warning("Client %s %s differs from server %s", field, claimed, getattr(breakdown, attr))
            raise ValidationError(
                "Order price does not match current pricing",
                payload={"expected": breakdown.to_json()},
            )


def _consume_coupon_use(db, coupon: DiscountCoupon) -> None:
    result = db.execute(
        update(DiscountCoupon)
        .where(DiscountCoupon.coupon_id == coupon.coupon_id)
        .where(or_(DiscountCoupon.usage_limit.is_(None), DiscountCoupon.used_count < DiscountCoupon.usage_limit))
        .values(used_count=DiscountCoupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Another order took the last use between evaluation and this update
        raise CouponRejected(Evaluation(
            state=CouponState.USAGE_EXHAUSTED,
            message=REJECTION_MESSAGES[CouponState.USAGE_EXHAUSTED],
            coupon=coupon,
        ))


def place_order(db, user_id: str, data: dict, now=None) -> Order:
    """
    Prices and persists an order in a single transaction.

    The breakdown is computed server-side from the order lines, the current
    shipping configuration and the coupon (evaluated against the items
    price). Coupon usage is counted in the same transaction as the insert,
    so it is counted exactly once per persisted order and never for a failed
    one.

    Args:
        db: Database session; committed on success, rolled back on failure.
        user_id: Identifier of the ordering user.
        data: Order payload (orderItems, shippingAddress, paymentMethod, and
            optionally shippingMethod, couponCode or coupon, client prices).

    Returns:
        The persisted Order.

    Raises:
        PricingError: On invalid input, a rejected coupon or a price mismatch.
    """
    now = now or utcnow()
    try:
        lines = parse_order_items(data.get("orderItems"))
        address = parse_shipping_address(data.get("shippingAddress"))
        payment_method = data.get("paymentMethod")
        if not isinstance(payment_method, str) or not payment_method.strip():
            raise ValidationError("paymentMethod is required")
        method = data.get("shippingMethod") or STANDARD
        if method not in SHIPPING_METHODS:
            raise ValidationError(f"Unknown shipping method: {method}")

        config = ShippingConfigService(db).get_config(commit=False)

        coupon = None
        discount = 0
        code = requested_coupon_code(data)
        if code:
            evaluation = CouponEvaluator(db).evaluate(code, items_price(lines), lines, now=now)
            if not evaluation.valid:
                raise CouponRejected(evaluation)
            coupon = evaluation.coupon
            discount = evaluation.discount

        breakdown = assemble(lines, config, discount, method)
        check_client_prices(data, breakdown)

        order = Order(
            order_id=str(uuid.uuid4()),
            user_id=user_id,
            shipping_address=json.dumps(address),
            payment_method=payment_method.strip(),
            shipping_method=method,
            items_price=breakdown.items_price,
            shipping_price=breakdown.shipping_price,
            tax_price=breakdown.tax_price,
            coupon_discount=breakdown.coupon_discount,
            coupon=json.dumps({
                "code": coupon.code,
                "discountType": coupon.discount_type,
                "discountValue": coupon.discount_value,
            }) if coupon is not None else None,
            total_price=breakdown.total_price,
            status="Processing",
            created_at=now,
        )
        db.add(order)
        for line_no, line in enumerate(lines):
            db.add(OrderItem(
                item_id=str(uuid.uuid4()),
                order_id=order.order_id,
                line_no=line_no,
                product_id=line.product_id,
                name=line.name,
                qty=line.qty,
                price=line.price,
            ))
        if coupon is not None:
            _consume_coupon_use(db, coupon)

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Order %s placed by %s: total=%s coupon=%s",
        order.order_id, user_id, order.total_price, code or "-",
    )
    return order


def get_order_or_404(db, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


def set_status(db, order: Order, status: str) -> Order:
    """
    Moves an order to a new status. Delivering a cash-on-delivery order also
    marks it paid; leaving Delivered clears the delivery stamp.
    """
    if status not in ORDER_STATUSES:
        raise ValidationError("status must be one of " + ", ".join(ORDER_STATUSES))
    order.status = status
    if status == "Delivered":
        _mark_delivered(order)
    else:
        order.is_delivered = False
        order.delivered_at = None
    db.commit()
    return order


def mark_delivered(db, order: Order) -> Order:
    order.status = "Delivered"
    _mark_delivered(order)
    db.commit()
    return order


def _mark_delivered(order: Order) -> None:
    now = utcnow()
    order.is_delivered = True
    order.delivered_at = now
    if order.payment_method == "COD" and not order.is_paid:
        order.is_paid = True
        order.paid_at = now


def order_to_json(order: Order) -> dict:
    """Serializes an order from its stored breakdown. Nothing is recomputed."""
    return {
        "_id": order.order_id,
        "user": order.user_id,
        "orderItems": [
            {
                "product": item.product_id,
                "name": item.name,
                "qty": item.qty,
                "price": from_minor(item.price),
            }
            for item in order.items
        ],
        "shippingAddress": json.loads(order.shipping_address),
        "paymentMethod": order.payment_method,
        "shippingMethod": order.shipping_method,
        "itemsPrice": from_minor(order.items_price),
        "shippingPrice": from_minor(order.shipping_price),
        "taxPrice": from_minor(order.tax_price),
        "couponDiscount": from_minor(order.coupon_discount),
        "coupon": json.loads(order.coupon) if order.coupon else None,
        "totalPrice": from_minor(order.total_price),
        "status": order.status,
        "isPaid": order.is_paid,
        "paidAt": order.paid_at.isoformat() if order.paid_at else None,
        "isDelivered": order.is_delivered,
        "deliveredAt": order.delivered_at.isoformat() if order.delivered_at else None,
        "createdAt": order.created_at.isoformat(),
    }


def render_invoice(order: Order) -> str:
    """
    Plain-text tax invoice built only from the breakdown stored with the order.
    """
    address = json.loads(order.shipping_address)
    ref = order.order_id[-8:].upper()
    lines = [
        f"TAX INVOICE | Order #{ref}",
        f"Order date: {order.created_at.strftime('%d/%m/%Y')}",
        "Payment method: " + ("Cash on Delivery" if order.payment_method == "COD" else order.payment_method),
        "Status: " + ("Paid" if order.is_paid else "Payment Pending"),
        "",
        "Ship to:",
        f"  {address['street']}",
        f"  {address['city']}, {address['state']} {address['postalCode']}",
        f"  {address['country']}",
        "",
        f"{'Product':<30}{'Qty':>5}{'Price':>16}{'Total':>16}",
    ]
    for item in order.items:
        lines.append(
            f"{item.name[:30]:<30}{item.qty:>5}{format_currency(item.price):>16}"
            f"{format_currency(item.qty * item.price):>16}"
        )
    lines.append("")
    lines.append(f"{'Subtotal:':>51}{format_currency(order.items_price):>16}")
    shipping = "FREE" if order.shipping_price == 0 else format_currency(order.shipping_price)
    lines.append(f"{'Shipping:':>51}{shipping:>16}")
    lines.append(f"{'Tax:':>51}{format_currency(order.tax_price):>16}")
    if order.coupon_discount:
        code = json.loads(order.coupon)["code"] if order.coupon else ""
        label = f"Discount ({code}):" if code else "Discount:"
        lines.append(f"{label:>51}{'-' + format_currency(order.coupon_discount):>16}")
    lines.append(f"{'Total:':>51}{format_currency(order.total_price):>16}")
    return "\n".join(lines) + "\n"
