from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from base import Base

# Primary key of the single live shipping configuration row.
SHIPPING_CONFIG_ID = 1


class User(Base):
    __tablename__ = 'users'
    user_id = Column(String, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)


class Category(Base):
    __tablename__ = 'categories'
    category_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)


class Product(Base):
    __tablename__ = 'products'
    product_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    category_id = Column(String, ForeignKey('categories.category_id'))
    price = Column(Integer, nullable=False, default=0)


class ShippingConfig(Base):
    __tablename__ = 'shipping_config'
    config_id = Column(Integer, primary_key=True, default=SHIPPING_CONFIG_ID)
    standard_shipping_cost = Column(Integer, nullable=False, default=4000)
    free_shipping_threshold = Column(Integer, nullable=False, default=50000)
    express_shipping_cost = Column(Integer, nullable=False, default=8000)
    tax_rate = Column(Float, nullable=False, default=0.18)
    free_shipping_enabled = Column(Boolean, nullable=False, default=True)
    express_shipping_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime)


class DiscountCoupon(Base):
    __tablename__ = 'discount_coupons'
    coupon_id = Column(String, primary_key=True)
    code = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False)
    discount_type = Column(String, nullable=False)
    # Percentage points for PERCENTAGE, rupees for FIXED_AMOUNT.
    discount_value = Column(Float, nullable=False)
    minimum_order_amount = Column(Integer, nullable=False, default=0)
    maximum_discount_amount = Column(Integer)
    usage_limit = Column(Integer)
    used_count = Column(Integer, nullable=False, default=0)
    # Legacy rows may carry NULL here; those count as active.
    is_active = Column(Boolean, default=True)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    applicable_to = Column(String, nullable=False, default='ALL')
    applicable_categories = Column(Text)
    applicable_products = Column(Text)
    created_by = Column(String, ForeignKey('users.user_id'))
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class Order(Base):
    __tablename__ = 'orders'
    order_id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('users.user_id'), nullable=False)
    shipping_address = Column(Text, nullable=False)
    payment_method = Column(String, nullable=False)
    shipping_method = Column(String, nullable=False, default='standard')
    items_price = Column(Integer, nullable=False)
    shipping_price = Column(Integer, nullable=False)
    tax_price = Column(Integer, nullable=False)
    coupon_discount = Column(Integer, nullable=False, default=0)
    coupon = Column(Text)
    total_price = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default='Pending')
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)

    items = relationship('OrderItem', back_populates='order', order_by='OrderItem.line_no')


class OrderItem(Base):
    __tablename__ = 'order_items'
    item_id = Column(String, primary_key=True)
    order_id = Column(String, ForeignKey('orders.order_id'), nullable=False)
    line_no = Column(Integer, nullable=False)
    product_id = Column(String)
    name = Column(String, nullable=False)
    qty = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)

    order = relationship('Order', back_populates='items')
