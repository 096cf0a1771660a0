"""
SQLAlchemy ORM models for the Storefront service.

Defines the database schema for users, products, orders, order events and sales.
Document-shaped sub-objects (line items, pricing, payment, address, metadata)
are stored as JSON columns.
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from .database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

ORDER_STATUSES = ("processing", "shipped", "delivered")
USER_ROLES = ("user", "admin")


def new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """
    User model representing a customer or administrator account.

    Attributes:
        id (str): Primary key, opaque hex identifier
        name (str): User's display name
        email (str): User's email address (unique)
        password_hash (str): Hashed password
        phone (str): Primary mobile number (optional)
        role (str): User role (user, admin)
        cart (list): Cart line items (stored as JSON)
        favorites (list): Favorite product ids (stored as JSON)
        address (dict): Saved delivery address (optional)
        settings (dict): UI preferences (themeMode, accentColor)
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    phone = Column(String(15), nullable=True)
    role = Column(String, default="user", nullable=False)
    cart = Column(JSONType, default=list, nullable=False)
    favorites = Column(JSONType, default=list, nullable=False)
    address = Column(JSONType, nullable=True)
    settings = Column(JSONType, default=lambda: {"themeMode": "system"}, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Product(Base):
    """Catalogue entry. Inactive products are hidden from the public catalogue."""
    __tablename__ = "products"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    unit = Column(String, default="kg", nullable=False)
    stock = Column(Integer, default=0, nullable=False)
    image = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    rating = Column(Numeric(3, 2), default=0, nullable=False)
    discount = Column(Numeric(5, 2), default=0, nullable=False)
    sold = Column(Integer, default=0, nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    default_measure = Column(Numeric(10, 3), default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Order(Base):
    """
    Order model representing a user's checkout.

    Attributes:
        id (str): Primary key, opaque hex identifier
        user_id (str): Owning user
        items (list): Line items with name, price, quantity, unit and line total (JSON)
        pricing (dict): subtotal, discount, deliveryFee, tax, total, coupon (JSON)
        delivery_slot (str): Delivery slot label
        payment (dict): method, paymentId, status, upiId, cardLast4 (JSON)
        address (dict): Shipping address snapshot (JSON)
        status (str): processing, shipped or delivered
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    items = Column(JSONType, default=list, nullable=False)
    pricing = Column(JSONType, default=dict, nullable=False)
    delivery_slot = Column(String, nullable=True)
    payment = Column(JSONType, default=dict, nullable=False)
    address = Column(JSONType, default=dict, nullable=False)
    status = Column(String, default="processing", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User")


class OrderEvent(Base):
    """
    OrderEvent model representing historical events in an order's lifecycle.

    Attributes:
        id (int): Primary key, auto-incrementing event ID
        order_id (str): Foreign key to the order
        event_type (str): Type of event ("created", "status_changed")
        description (str): Human-readable description of the event
        old_value (str): Previous value (for changes, optional)
        new_value (str): New value (for changes, optional)
        user_id (str): ID of the user who triggered the event (optional)
        created_at (datetime): Timestamp when the event occurred
    """
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    user_id = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Sale(Base):
    """
    Sale model representing a financial ledger entry.

    ``order_ref`` is a soft link: it is not a foreign key, and sales recorded by
    admin tooling usually leave it empty.
    """
    __tablename__ = "sales"

    id = Column(String(32), primary_key=True, default=new_id)
    items = Column(JSONType, default=list, nullable=False)
    subtotal = Column(Numeric(12, 2), default=0, nullable=False)
    tax = Column(Numeric(12, 2), default=0, nullable=False)
    tax_rate = Column(Numeric(6, 3), default=0, nullable=False)
    total = Column(Numeric(12, 2), default=0, nullable=False)
    source = Column(String, default="order", nullable=False)
    order_ref = Column(String(32), nullable=True, index=True)
    created_by = Column(String(32), nullable=True)
    note = Column(Text, nullable=True)
    meta = Column(JSONType, default=dict, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
