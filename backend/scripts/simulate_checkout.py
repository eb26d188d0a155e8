#!/usr/bin/env python3
import os
import sys
import logging
import requests

# Add the parent directory to sys.path to allow imports from the backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from client import StorefrontClient, CouponError

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

CART = [
    {"product": "demo-shirt", "name": "Classic Oxford Shirt", "qty": 1, "price": 350},
    {"product": "demo-tee", "name": "Kids Graphic Tee", "qty": 1, "price": 250},
]
ADDRESS = {
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postalCode": "560001",
    "country": "India",
}

def print_step(step_name: str):
    """
    Renders a highlighted progression step to the console output.

    Args:
        step_name: Description of the current checkout stage.
    """
    logger.info(f"=== {step_name} ===")

def run_demo(coupon_code: str = "SAVE20"):
    """
    Walks a seeded server through a checkout: login, config, coupon, order.
    """
    client = StorefrontClient()

    print_step("1. Shopper logs in")
    client.login("alice")

    print_step("2. Fetch shipping configuration")
    config = client.fetch_shipping_config()
    logger.info(f"Config: {config}")

    print_step(f"3. Validate coupon {coupon_code}")
    quote_without = client.quote(CART, config)
    coupon = None
    try:
        coupon = client.validate_coupon(coupon_code, quote_without.items_price, CART)
        logger.info(f"Coupon accepted: {coupon}")
    except CouponError as e:
        logger.warning(f"Coupon rejected: {e.message}")

    print_step("4. Provisional breakdown")
    breakdown = client.quote(CART, config, coupon)
    logger.info(f"Breakdown: {breakdown.to_json()}")

    print_step("5. Place order")
    order = client.place_order(CART, ADDRESS, "COD", breakdown, coupon)
    logger.info(f"Order {order['_id']} placed, total ₹{order['totalPrice']}")

if __name__ == "__main__":
    try:
        run_demo(*sys.argv[1:2])
    except requests.exceptions.ConnectionError:
        logger.error("Connection Error: Is the backend server running on localhost:8000?")
        exit(1)
