import logging
from flask import Blueprint, jsonify
from db import get_db
from routes.auth import require_role
from routes.payload import json_body
from services.errors import PricingError
from services.shipping import ShippingConfigService, parse_config_fields

logger = logging.getLogger(__name__)

shipping_bp = Blueprint("shipping", __name__)


@shipping_bp.route("/shipping/config", methods=["GET"])
def get_shipping_config():
    """
    Returns the live shipping and tax configuration.
    ---
    Output (200):
        - standardShippingCost, freeShippingThreshold, expressShippingCost (rupees)
        - taxRate (fraction)
        - freeShippingEnabled, expressShippingEnabled (bool)
    """
    db = next(get_db())
    try:
        config = ShippingConfigService(db).get_config()
        return jsonify(config.to_json()), 200
    finally:
        db.close()


@shipping_bp.route("/shipping/config", methods=["PUT"])
@require_role("admin")
def update_shipping_config(user, db):
    """
    Overwrites any subset of the configuration fields.
    ---
    Input (JSON): any of the fields returned by GET /shipping/config
    Output (200): the full updated configuration
    Errors:
        - 400: A supplied field has the wrong type or range
        - 401/403: Missing token or non-admin caller
    """
    data = json_body()
    try:
        fields = parse_config_fields(data)
    except PricingError as e:
        return jsonify(e.to_dict()), e.status_code

    config = ShippingConfigService(db).update_config(fields)
    logger.info("Shipping configuration changed by %s", user.username)
    return jsonify(config.to_json()), 200
