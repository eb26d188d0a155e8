import json
import uuid
from datetime import timedelta
from schema import User, Category, Product, DiscountCoupon
from routes.auth import issue_token
from utils import to_minor, utcnow

ADDRESS = {
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postalCode": "560001",
    "country": "India",
}

def make_user(db, username, is_admin=False):
    user = User(user_id=str(uuid.uuid4()), username=username, is_admin=is_admin)
    db.add(user)
    db.commit()
    return user

def auth_headers(user):
    return {"Authorization": f"Bearer {issue_token(user)}"}

def make_category(db, name="Kids"):
    category = Category(category_id=str(uuid.uuid4()), name=name)
    db.add(category)
    db.commit()
    return category

def make_product(db, name, category, price=499):
    product = Product(
        product_id=str(uuid.uuid4()),
        name=name,
        category_id=category.category_id,
        price=to_minor(price),
    )
    db.add(product)
    db.commit()
    return product

def make_coupon(db, code="SAVE10", **overrides):
    """
    Inserts a coupon that is valid right now unless overridden. Money
    overrides are given in rupees.
    """
    now = utcnow()
    fields = {
        "description": "Test coupon",
        "discount_type": "PERCENTAGE",
        "discount_value": 10,
        "minimum_order_amount": 0,
        "maximum_discount_amount": None,
        "usage_limit": None,
        "used_count": 0,
        "is_active": True,
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
        "applicable_to": "ALL",
        "applicable_categories": [],
        "applicable_products": [],
        "created_at": now,
    }
    fields.update(overrides)
    for money in ("minimum_order_amount", "maximum_discount_amount"):
        if fields[money] is not None:
            fields[money] = to_minor(fields[money])
    fields["applicable_categories"] = json.dumps(fields["applicable_categories"])
    fields["applicable_products"] = json.dumps(fields["applicable_products"])
    coupon = DiscountCoupon(coupon_id=str(uuid.uuid4()), code=code.strip().upper(), **fields)
    db.add(coupon)
    db.commit()
    return coupon

def cart_item(price, qty=1, product="p-1", name="Item", category=None):
    item = {"product": product, "name": name, "qty": qty, "price": price}
    if category is not None:
        item["category"] = category
    return item

def post_order(client, headers, items, **extra):
    body = {"orderItems": items, "shippingAddress": ADDRESS, "paymentMethod": "COD"}
    body.update(extra)
    return client.post("/api/v1/orders", json=body, headers=headers)

def validate(client, headers, code, order_amount, cart_items=None):
    return client.post(
        "/api/v1/discount-coupons/validate",
        json={"code": code, "orderAmount": order_amount, "cartItems": cart_items or []},
        headers=headers,
    )

def build_coupon(**fields):
    """Unsaved coupon for pure-function tests. Money fields are in paise."""
    now = utcnow()
    defaults = {
        "code": "TEST",
        "discount_type": "PERCENTAGE",
        "discount_value": 10,
        "minimum_order_amount": 0,
        "maximum_discount_amount": None,
        "usage_limit": None,
        "used_count": 0,
        "is_active": True,
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=1),
        "applicable_to": "ALL",
        "applicable_categories": "[]",
        "applicable_products": "[]",
    }
    defaults.update(fields)
    return DiscountCoupon(**defaults)
