import os
import logging
from typing import List, Optional
import requests
from services.coupons import CartLine
from services.pricing import PriceBreakdown, assemble
from services.shipping import ShippingSettings, ZERO_SETTINGS, STANDARD
from utils import to_minor, from_minor

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api/v1"


class CouponError(Exception):
    """A coupon rejection, carrying the server's message verbatim."""

    def __init__(self, message: str, state: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.state = state
        self.status_code = status_code


class StorefrontClient:
    """
    Checkout-side client for the storefront API.

    Mirrors the checkout page: fetch the shipping configuration, validate a
    coupon against the cart subtotal, show a provisional breakdown, then
    place the order with the same numbers.
    """

    def __init__(self, base_url: str = None, token: str = None, timeout: float = 10.0):
        self.base_url = (base_url or os.getenv("STOREFRONT_API_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def login(self, username: str) -> dict:
        res = requests.post(f"{self.base_url}/auth/login", json={"username": username}, timeout=self.timeout)
        res.raise_for_status()
        data = res.json()
        self.token = data["token"]
        return data

    def fetch_shipping_config(self) -> ShippingSettings:
        """
        Current shipping settings, or all-zero settings when they cannot be
        fetched. Never falls back to previously seen values.
        """
        try:
            res = requests.get(f"{self.base_url}/shipping/config", timeout=self.timeout)
            res.raise_for_status()
            data = res.json()
            return ShippingSettings(
                standard_shipping_cost=to_minor(data["standardShippingCost"]),
                free_shipping_threshold=to_minor(data["freeShippingThreshold"]),
                express_shipping_cost=to_minor(data["expressShippingCost"]),
                tax_rate=float(data["taxRate"]),
                free_shipping_enabled=bool(data["freeShippingEnabled"]),
                express_shipping_enabled=bool(data["expressShippingEnabled"]),
            )
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to fetch shipping config, using zero shipping and tax: %s", e)
            return ZERO_SETTINGS

    def validate_coupon(self, code: str, order_amount: int, cart_items: List[dict]) -> dict:
        """
        Asks the server whether a coupon applies.

        Args:
            order_amount: Discount base in paise.
            cart_items: Cart entries as sent to the API.

        Returns:
            The `coupon` object from the response, with `discountAmount` in rupees.

        Raises:
            CouponError: With the server's exact rejection message.
        """
        res = requests.post(
            f"{self.base_url}/discount-coupons/validate",
            json={"code": code, "orderAmount": from_minor(order_amount), "cartItems": cart_items},
            headers=self._headers(),
            timeout=self.timeout,
        )
        body = res.json()
        if res.status_code != 200:
            raise CouponError(body.get("message", res.text), state=body.get("state"), status_code=res.status_code)
        return body["coupon"]

    def quote(self, cart_items: List[dict], config: ShippingSettings, coupon: Optional[dict] = None,
              method: str = STANDARD) -> PriceBreakdown:
        """Provisional breakdown for display, using the same formula as the server."""
        lines = [CartLine(qty=item["qty"], price=to_minor(item["price"])) for item in cart_items]
        discount = to_minor(coupon["discountAmount"]) if coupon else 0
        return assemble(lines, config, discount, method)

    def place_order(self, cart_items: List[dict], shipping_address: dict, payment_method: str,
                    breakdown: PriceBreakdown, coupon: Optional[dict] = None, method: str = STANDARD) -> dict:
        """
        Submits the order along with the prices the shopper saw.

        Raises:
            requests.HTTPError: If the server rejects the order.
        """
        payload = {
            "orderItems": cart_items,
            "shippingAddress": shipping_address,
            "paymentMethod": payment_method,
            "shippingMethod": method,
            **breakdown.to_json(),
        }
        if coupon:
            payload["coupon"] = {
                "code": coupon["code"],
                "discountType": coupon["discountType"],
                "discountValue": coupon["discountValue"],
            }
        res = requests.post(f"{self.base_url}/orders", json=payload, headers=self._headers(), timeout=self.timeout)
        if res.status_code != 201:
            logger.error("Order rejected (%s): %s", res.status_code, res.text)
        res.raise_for_status()
        return res.json()
