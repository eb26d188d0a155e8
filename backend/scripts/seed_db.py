#!/usr/bin/env python3
import os
import sys
import json
import uuid
import logging
from datetime import timedelta

# Add the parent directory to sys.path to allow imports from the backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import SessionLocal, init_db
from schema import User, Category, Product, DiscountCoupon
from services.shipping import ShippingConfigService
from utils import to_minor, utcnow

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

USERS = [("admin", True), ("alice", False), ("bob", False)]
CATEGORIES = ["Men", "Women", "Kids"]
PRODUCTS = [
    ("Classic Oxford Shirt", "Men", 1299),
    ("Slim Fit Chinos", "Men", 1599),
    ("Floral Summer Dress", "Women", 1899),
    ("Denim Jacket", "Women", 2499),
    ("Kids Graphic Tee", "Kids", 499),
]


def seed():
    """
    Populates an empty database with demo users, a small catalog, the default
    shipping configuration and a few coupons. Existing rows are left alone.
    """
    init_db()
    db = SessionLocal()
    try:
        for username, is_admin in USERS:
            if not db.query(User).filter_by(username=username).first():
                db.add(User(user_id=str(uuid.uuid4()), username=username, is_admin=is_admin))

        category_ids = {}
        for name in CATEGORIES:
            category = db.query(Category).filter_by(name=name).first()
            if not category:
                category = Category(category_id=str(uuid.uuid4()), name=name)
                db.add(category)
            category_ids[name] = category.category_id

        for name, category, price in PRODUCTS:
            if not db.query(Product).filter_by(name=name).first():
                db.add(Product(
                    product_id=str(uuid.uuid4()),
                    name=name,
                    category_id=category_ids[category],
                    price=to_minor(price),
                ))
        db.commit()

        admin = db.query(User).filter_by(username="admin").first()
        now = utcnow()
        coupons = [
            ("SAVE20", "20% off, up to ₹100", "PERCENTAGE", 20, 0, 100, None, "ALL", []),
            ("FLAT50", "₹50 off any order", "FIXED_AMOUNT", 50, 0, None, 500, "ALL", []),
            ("KIDS10", "10% off kidswear", "PERCENTAGE", 10, 300, None, None,
             "SPECIFIC_CATEGORIES", [category_ids["Kids"]]),
        ]
        for code, description, kind, value, minimum, cap, limit, scope, categories in coupons:
            if db.query(DiscountCoupon).filter_by(code=code).first():
                continue
            db.add(DiscountCoupon(
                coupon_id=str(uuid.uuid4()),
                code=code,
                description=description,
                discount_type=kind,
                discount_value=value,
                minimum_order_amount=to_minor(minimum),
                maximum_discount_amount=to_minor(cap) if cap is not None else None,
                usage_limit=limit,
                used_count=0,
                is_active=True,
                valid_from=now,
                valid_until=now + timedelta(days=90),
                applicable_to=scope,
                applicable_categories=json.dumps(categories),
                applicable_products=json.dumps([]),
                created_by=admin.user_id,
                created_at=now,
                updated_at=now,
            ))
        db.commit()

        ShippingConfigService(db).get_config()
        logger.info("Seeded %d users, %d products, %d coupons", len(USERS), len(PRODUCTS), len(coupons))
    finally:
        db.close()


if __name__ == "__main__":
    seed()
