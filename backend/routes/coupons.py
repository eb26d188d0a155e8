import json
import logging
from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from db import get_db
from routes.auth import require_auth, require_role
from routes.payload import json_body
from schema import DiscountCoupon
from services.coupons import (
    CartLine, CouponEvaluator, apply_coupon_fields, create_coupon, get_coupon_or_404, item_identifiers,
)
from services.errors import PricingError, ValidationError
from utils import to_minor, from_minor

logger = logging.getLogger(__name__)

coupons_bp = Blueprint("coupons", __name__)


def _iso(value):
    return value.isoformat() if value else None


def coupon_public_json(coupon: DiscountCoupon) -> dict:
    """Evaluation-relevant fields only; no audit data."""
    return {
        "_id": coupon.coupon_id,
        "code": coupon.code,
        "description": coupon.description,
        "discountType": coupon.discount_type,
        "discountValue": coupon.discount_value,
        "minimumOrderAmount": from_minor(coupon.minimum_order_amount or 0),
        "maximumDiscountAmount": from_minor(coupon.maximum_discount_amount),
        "usageLimit": coupon.usage_limit,
        "usedCount": coupon.used_count,
        "validUntil": _iso(coupon.valid_until),
        "applicableTo": coupon.applicable_to,
        "createdAt": _iso(coupon.created_at),
    }


def coupon_admin_json(coupon: DiscountCoupon) -> dict:
    body = coupon_public_json(coupon)
    body.update({
        "isActive": coupon.is_active is not False,
        "validFrom": _iso(coupon.valid_from),
        "applicableCategories": json.loads(coupon.applicable_categories or "[]"),
        "applicableProducts": json.loads(coupon.applicable_products or "[]"),
        "createdBy": coupon.created_by,
        "updatedAt": _iso(coupon.updated_at),
    })
    return body


def _parse_amount(value, name="orderAmount"):
    try:
        amount = to_minor(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if amount < 0:
        raise ValidationError(f"{name} must not be negative")
    return amount


def _scope_lines(raw) -> list:
    """Cart items reduced to the identifiers the scope check needs."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("cartItems must be a list")
    lines = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("cartItems entries must be objects")
        product_id, category_id = item_identifiers(item)
        lines.append(CartLine(
            qty=0,
            price=0,
            product_id=product_id,
            category_id=category_id,
        ))
    return lines


@coupons_bp.route("/discount-coupons/public", methods=["GET"])
def list_public_coupons():
    """
    Lists active, unexpired coupons a shopper can try.
    ---
    Input (Query):
        - orderAmount (number, optional): only coupons whose minimum it meets
    Output (200): array of coupons
    """
    raw_amount = request.args.get("orderAmount")
    db = next(get_db())
    try:
        try:
            order_amount = _parse_amount(raw_amount) if raw_amount is not None else None
        except PricingError as e:
            return jsonify(e.to_dict()), e.status_code
        coupons = CouponEvaluator(db).list_public(order_amount)
        return jsonify([coupon_public_json(c) for c in coupons]), 200
    finally:
        db.close()


@coupons_bp.route("/discount-coupons/validate", methods=["POST"])
@require_auth
def validate_coupon(user, db):
    """
    Checks a coupon code against an order amount and cart without using it up.
    ---
    Input (JSON):
        - code (str): Coupon code, any case
        - orderAmount (number): Amount the discount applies to, in rupees
        - cartItems (list, optional): Items with `product`/`_id` and `category`
    Output (200):
        - coupon: code, description, discountType, discountValue, discountAmount
        - message (str)
    Errors:
        - 400: Missing code, bad amount, or the coupon does not apply
        - 404: Unknown or inactive code
    """
    data = json_body()
    code = data.get("code")
    if not isinstance(code, str) or not code.strip():
        return jsonify({"message": "Coupon code is required"}), 400

    try:
        order_amount = _parse_amount(data.get("orderAmount", 0))
        lines = _scope_lines(data.get("cartItems"))
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code

    evaluation = CouponEvaluator(db).evaluate(code, order_amount, lines)
    if not evaluation.valid:
        return jsonify({"message": evaluation.message, "state": evaluation.state.value}), evaluation.http_status

    coupon = evaluation.coupon
    return jsonify({
        "coupon": {
            "code": coupon.code,
            "description": coupon.description,
            "discountType": coupon.discount_type,
            "discountValue": coupon.discount_value,
            "discountAmount": from_minor(evaluation.discount),
        },
        "message": evaluation.message,
    }), 200


@coupons_bp.route("/discount-coupons", methods=["POST"])
@require_role("admin")
def create_discount_coupon(user, db):
    data = json_body()
    try:
        coupon = create_coupon(db, data, created_by=user.user_id)
    except PricingError as e:
        db.rollback()
        return jsonify(e.to_dict()), e.status_code
    return jsonify(coupon_admin_json(coupon)), 201


@coupons_bp.route("/discount-coupons", methods=["GET"])
@require_role("admin")
def list_coupons(user, db):
    coupons = db.query(DiscountCoupon).order_by(DiscountCoupon.created_at.desc()).all()
    return jsonify([coupon_admin_json(c) for c in coupons]), 200


@coupons_bp.route("/discount-coupons/<coupon_id>", methods=["GET"])
@require_role("admin")
def get_discount_coupon(user, db, coupon_id):
    try:
        coupon = get_coupon_or_404(db, coupon_id)
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(coupon_admin_json(coupon)), 200


@coupons_bp.route("/discount-coupons/<coupon_id>", methods=["PUT"])
@require_role("admin")
def update_discount_coupon(user, db, coupon_id):
    """
    Partially updates a coupon. Changing the code re-checks uniqueness.
    """
    data = json_body()
    try:
        coupon = get_coupon_or_404(db, coupon_id)
        apply_coupon_fields(db, coupon, data, creating=False)
        db.commit()
    except PricingError as e:
        db.rollback()
        return jsonify(e.to_dict()), e.status_code
    except IntegrityError:
        db.rollback()
        return jsonify({"message": "Coupon code already exists"}), 400

    logger.info("Coupon %s updated by %s", coupon.code, user.username)
    return jsonify(coupon_admin_json(coupon)), 200


@coupons_bp.route("/discount-coupons/<coupon_id>", methods=["DELETE"])
@require_role("admin")
def delete_discount_coupon(user, db, coupon_id):
    try:
        coupon = get_coupon_or_404(db, coupon_id)
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code
    code = coupon.code
    db.delete(coupon)
    db.commit()
    logger.info("Coupon %s deleted by %s", code, user.username)
    return jsonify({"message": "Coupon deleted successfully"}), 200
