"""
CRUD (Create, Read, Update, Delete) operations for the Storefront service.

This module contains the plain database operations for users, products,
orders and sales. Order placement and sale derivation live in ``checkout``.
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import AlreadyExists, PersistenceFailure

# Set up logging
logger = logging.getLogger(__name__)


def commit(db: Session, context: str) -> None:
    """
    Commit the current transaction, translating store errors.

    Args:
        db: Database session
        context: Short description of the write, used in log lines

    Raises:
        AlreadyExists: on a unique constraint violation
        PersistenceFailure: on any other database error
    """
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"{context}: constraint violation: {e.orig}")
        raise AlreadyExists()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"{context}: database error")
        raise PersistenceFailure()


# ---- Users ----------------------------------------------------------------

def get_user(db: Session, user_id: str) -> Optional[models.User]:
    """
    Retrieve a single user by ID.

    Args:
        db: Database session
        user_id: ID of the user to retrieve

    Returns:
        User object or None if not found
    """
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    """
    Retrieve a user by email address (case-insensitive).

    Args:
        db: Database session
        email: Email address to search for

    Returns:
        User object or None if not found
    """
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def get_users(db: Session) -> List[models.User]:
    """All users, newest first."""
    return db.query(models.User).order_by(models.User.created_at.desc()).all()


def create_user(db: Session, name: str, email: str, password_hash: str) -> models.User:
    """
    Create a new user with the default ``user`` role.

    Raises:
        AlreadyExists: if the email is already registered (including a
            registration race caught by the unique index)
    """
    db_user = models.User(name=name, email=email, password_hash=password_hash, role="user")
    db.add(db_user)
    try:
        commit(db, f"register {email}")
    except AlreadyExists:
        logger.warning(f"Duplicate registration race condition for: {email}")
        raise AlreadyExists("User already exists", code="USER_EXISTS")
    db.refresh(db_user)
    return db_user


def update_user_fields(db: Session, db_user: models.User, **fields: Any) -> models.User:
    """
    Set the given attributes on a user and commit.

    Args:
        db: Database session
        db_user: User to update
        **fields: attribute names and new values; ``None`` values are skipped

    Returns:
        Updated User object
    """
    for key, value in fields.items():
        if value is not None:
            setattr(db_user, key, value)
    commit(db, f"update user {db_user.id}")
    db.refresh(db_user)
    return db_user


def promote_allowlisted(db: Session, emails: List[str]) -> List[str]:
    """
    Give the admin role to every existing user whose email is on the allow-list.

    Args:
        db: Database session
        emails: Lower-cased allow-listed emails

    Returns:
        Emails of the users whose role changed
    """
    if not emails:
        return []
    users = (
        db.query(models.User)
        .filter(func.lower(models.User.email).in_(emails), models.User.role != "admin")
        .all()
    )
    for user in users:
        user.role = "admin"
    commit(db, "promote allow-listed admins")
    return [user.email for user in users]


# ---- Products -------------------------------------------------------------

def get_product(db: Session, product_id: str) -> Optional[models.Product]:
    return db.query(models.Product).filter(models.Product.id == product_id).first()


def get_products(
    db: Session,
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    limit: int = 0,
    active_only: bool = True,
) -> List[models.Product]:
    """
    Query the catalogue.

    Args:
        db: Database session
        category: Exact category filter
        search: Case-insensitive substring match on the product name
        sort: price_asc, price_desc, newest or oldest (default newest)
        limit: Maximum number of rows, 0 for no limit
        active_only: Hide inactive products

    Returns:
        List of Product objects
    """
    query = db.query(models.Product)
    if active_only:
        query = query.filter(models.Product.active.is_(True))
    if category:
        query = query.filter(models.Product.category == category)
    if search:
        query = query.filter(models.Product.name.ilike(f"%{search}%"))

    if sort == "price_asc":
        query = query.order_by(models.Product.price.asc())
    elif sort == "price_desc":
        query = query.order_by(models.Product.price.desc())
    elif sort == "oldest":
        query = query.order_by(models.Product.created_at.asc())
    else:
        query = query.order_by(models.Product.created_at.desc())

    if limit > 0:
        query = query.limit(limit)
    return query.all()


def get_trending_products(db: Session, limit: int) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.active.is_(True))
        .order_by(models.Product.sold.desc(), models.Product.rating.desc())
        .limit(limit)
        .all()
    )


def get_offer_products(db: Session, limit: int) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.active.is_(True), models.Product.discount > 0)
        .order_by(models.Product.discount.desc(), models.Product.created_at.desc())
        .limit(limit)
        .all()
    )


def get_featured_products(db: Session, limit: int) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.active.is_(True), models.Product.is_featured.is_(True))
        .order_by(models.Product.created_at.desc())
        .limit(limit)
        .all()
    )


def get_product_stats(db: Session) -> Dict[str, Any]:
    """
    Catalogue statistics over active products.

    Returns:
        dict with total_products, featured_count, on_sale_count, avg_rating, total_sold
    """
    active = db.query(models.Product).filter(models.Product.active.is_(True))
    return {
        "total_products": active.count(),
        "featured_count": active.filter(models.Product.is_featured.is_(True)).count(),
        "on_sale_count": active.filter(models.Product.discount > 0).count(),
        "avg_rating": float(active.with_entities(func.avg(models.Product.rating)).scalar() or 0),
        "total_sold": int(active.with_entities(func.sum(models.Product.sold)).scalar() or 0),
    }


def create_product(db: Session, product: schemas.ProductCreate) -> models.Product:
    db_product = models.Product(**product.model_dump())
    db.add(db_product)
    commit(db, f"create product {product.name}")
    db.refresh(db_product)
    return db_product


def update_product(db: Session, product_id: str, product: schemas.ProductUpdate) -> Optional[models.Product]:
    """
    Update an existing product.

    Args:
        db: Database session
        product_id: ID of the product to update
        product: Updated product data (only provided fields will be updated)

    Returns:
        Updated Product object or None if not found
    """
    db_product = get_product(db, product_id)
    if db_product is None:
        return None

    for key, value in product.model_dump(exclude_unset=True).items():
        setattr(db_product, key, value)

    commit(db, f"update product {product_id}")
    db.refresh(db_product)
    return db_product


def delete_product(db: Session, product_id: str) -> bool:
    """
    Delete a product from the catalogue.

    Returns:
        True if the product was deleted, False if not found
    """
    db_product = get_product(db, product_id)
    if db_product is None:
        return False
    db.delete(db_product)
    commit(db, f"delete product {product_id}")
    return True


# ---- Orders ---------------------------------------------------------------

def get_order(db: Session, order_id: str) -> Optional[models.Order]:
    """
    Retrieve a single order by ID.

    Args:
        db: Database session
        order_id: ID of the order to retrieve

    Returns:
        Order object or None if not found
    """
    return db.query(models.Order).filter(models.Order.id == order_id).first()


def get_orders_for_user(db: Session, user_id: str) -> List[models.Order]:
    """Orders owned by one user, newest first."""
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == user_id)
        .order_by(models.Order.created_at.desc(), models.Order.id)
        .all()
    )


def get_orders(db: Session) -> List[models.Order]:
    """All orders, newest first."""
    return db.query(models.Order).order_by(models.Order.created_at.desc(), models.Order.id).all()


def get_orders_without_sale(db: Session) -> List[models.Order]:
    """
    Orders that have no sale derived from them.

    Returns:
        List of Order objects, oldest first
    """
    return (
        db.query(models.Order)
        .outerjoin(
            models.Sale,
            and_(models.Sale.order_ref == models.Order.id, models.Sale.source == "order"),
        )
        .filter(models.Sale.id.is_(None))
        .order_by(models.Order.created_at.asc())
        .all()
    )


def add_order_event(
    db: Session,
    order_id: str,
    event_type: str,
    description: str,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    user_id: Optional[str] = None,
) -> models.OrderEvent:
    """
    Stage a timeline event for an order. The caller commits it together with
    the change it describes.

    Args:
        db: Database session
        order_id: Order identifier
        event_type: Type of event (e.g., "created", "status_changed")
        description: Human-readable description
        old_value: Previous value (optional)
        new_value: New value (optional)
        user_id: User who triggered the event (optional)
    """
    event = models.OrderEvent(
        order_id=order_id,
        event_type=event_type,
        description=description,
        old_value=old_value,
        new_value=new_value,
        user_id=user_id,
    )
    db.add(event)
    return event


def get_order_events(db: Session, order_id: str) -> List[models.OrderEvent]:
    return (
        db.query(models.OrderEvent)
        .filter(models.OrderEvent.order_id == order_id)
        .order_by(models.OrderEvent.created_at.asc(), models.OrderEvent.id.asc())
        .all()
    )


def set_order_status(db: Session, db_order: models.Order, new_status: str, user_id: str) -> models.Order:
    """
    Change the status of an order and record the change on its timeline.

    NOTE: This function assumes the transition has already been validated.
    Use validators.validate_order_status_transition() before calling it.
    """
    old_status = db_order.status
    if old_status == new_status:
        return db_order

    db_order.status = new_status
    add_order_event(
        db,
        order_id=db_order.id,
        event_type="status_changed",
        description=f"Status changed from '{old_status}' to '{new_status}'",
        old_value=old_status,
        new_value=new_status,
        user_id=user_id,
    )
    commit(db, f"update order {db_order.id} status")
    db.refresh(db_order)
    logger.info(f"Order {db_order.id} status {old_status} -> {new_status} by {user_id}")
    return db_order


# ---- Sales ----------------------------------------------------------------

def get_sales(db: Session) -> List[models.Sale]:
    """All sales, newest first."""
    return db.query(models.Sale).order_by(models.Sale.created_at.desc(), models.Sale.id).all()


def get_sales_for_order(db: Session, order_id: str) -> List[models.Sale]:
    return db.query(models.Sale).filter(models.Sale.order_ref == order_id).all()
