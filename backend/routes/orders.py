from flask import Blueprint, jsonify, Response
from routes.auth import require_auth, require_role
from routes.payload import json_body
from schema import Order
from services.errors import PricingError
from services.orders import (
    place_order, get_order_or_404, set_status, mark_delivered, order_to_json, render_invoice,
)

orders_bp = Blueprint("orders", __name__)


def _owned_order(db, user, order_id):
    order = get_order_or_404(db, order_id)
    if order.user_id != user.user_id and not user.is_admin:
        return None
    return order


@orders_bp.route("/orders", methods=["POST"])
@require_auth
def create_order(user, db):
    """
    Prices and places an order for the authenticated user.
    ---
    Input (JSON):
        - orderItems (list): product, name, qty, price, optional category
        - shippingAddress (obj): street, city, state, postalCode, country
        - paymentMethod (str)
        - shippingMethod (str, optional): 'standard' (default) or 'express'
        - couponCode (str, optional) or coupon snapshot with a code
        - itemsPrice, shippingPrice, taxPrice, couponDiscount, totalPrice
          (optional): client-side prices, checked against the server's
    Output (201): the persisted order
    Errors:
        - 400: Invalid payload, rejected coupon or price mismatch
        - 404: Unknown coupon code
    """
    data = json_body()
    try:
        order = place_order(db, user.user_id, data)
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(order_to_json(order)), 201


@orders_bp.route("/orders", methods=["GET"])
@require_role("admin")
def list_orders(user, db):
    orders = db.query(Order).order_by(Order.created_at.desc()).all()
    return jsonify([order_to_json(o) for o in orders]), 200


@orders_bp.route("/orders/mine", methods=["GET"])
@require_auth
def my_orders(user, db):
    orders = (
        db.query(Order)
        .filter_by(user_id=user.user_id)
        .order_by(Order.created_at.desc())
        .all()
    )
    return jsonify([order_to_json(o) for o in orders]), 200


@orders_bp.route("/orders/<order_id>", methods=["GET"])
@require_auth
def get_order(user, db, order_id):
    """
    Returns an order exactly as stored. Visible to its owner and to admins.
    """
    try:
        order = _owned_order(db, user, order_id)
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code
    if order is None:
        return jsonify({"message": "Not authorized to view this order"}), 403
    return jsonify(order_to_json(order)), 200


@orders_bp.route("/orders/<order_id>/invoice", methods=["GET"])
@require_auth
def get_invoice(user, db, order_id):
    try:
        order = _owned_order(db, user, order_id)
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code
    if order is None:
        return jsonify({"message": "Not authorized to view this order"}), 403
    return Response(render_invoice(order), mimetype="text/plain; charset=utf-8")


@orders_bp.route("/orders/<order_id>/status", methods=["PUT"])
@require_role("admin")
def update_order_status(user, db, order_id):
    data = json_body()
    try:
        order = set_status(db, get_order_or_404(db, order_id), data.get("status"))
    except PricingError as e:
        db.rollback()
        return jsonify(e.to_dict()), e.status_code
    return jsonify(order_to_json(order)), 200


@orders_bp.route("/orders/<order_id>/deliver", methods=["PUT"])
@require_role("admin")
def deliver_order(user, db, order_id):
    try:
        order = mark_delivered(db, get_order_or_404(db, order_id))
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(order_to_json(order)), 200
