"""
Order placement and sale bookkeeping.

Checkout runs in two separately committed steps:

1. ``write_order`` validates the payload and inserts the Order together with
   its ``created`` timeline event.
2. ``record_sale_for_order`` derives a Sale ledger entry from the stored Order.

``place_order`` sequences the two. Order placement is the user-facing contract,
so a failed sale write is logged and swallowed there; the order is never rolled
back because of it. ``reconcile_missing_sales`` later records the sale for any
order that ended up without one.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .errors import InvalidOrderPayload, SaleWriteFailed, from_validation_error

logger = logging.getLogger(__name__)

OrderPayload = Union[schemas.OrderCreate, Mapping[str, Any]]


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True)


def write_order(db: Session, user_id: str, payload: OrderPayload) -> models.Order:
    """
    Validate and persist a new order for one user.

    Args:
        db: Database session
        user_id: Owner of the order (the authenticated caller)
        payload: Validated ``OrderCreate`` or a raw mapping to validate

    Returns:
        The persisted Order, status ``processing``

    Raises:
        InvalidOrderPayload: if the payload fails validation; carries field detail
        PersistenceFailure: if the insert fails (nothing is written)
    """
    if not isinstance(payload, schemas.OrderCreate):
        try:
            payload = schemas.OrderCreate.model_validate(payload)
        except ValidationError as e:
            raise from_validation_error(e, InvalidOrderPayload)

    if not payload.items:
        raise InvalidOrderPayload("Order must include at least one item")

    items = []
    for item in payload.items:
        data = _dump(item)
        if item.line_total is None:
            data["lineTotal"] = round(item.price * item.quantity, 2)
        items.append(data)

    db_order = models.Order(
        id=models.new_id(),
        user_id=user_id,
        items=items,
        pricing=_dump(payload.pricing),
        delivery_slot=payload.delivery_slot,
        payment=_dump(payload.payment),
        address=_dump(payload.address),
        status="processing",
    )
    db.add(db_order)
    crud.add_order_event(
        db,
        order_id=db_order.id,
        event_type="created",
        description="Order created with status 'processing'",
        new_value="processing",
        user_id=user_id,
    )
    crud.commit(db, f"create order for user {user_id}")
    db.refresh(db_order)
    logger.info(f"Saved order {db_order.id} for user {user_id} ({len(items)} items)")
    return db_order


def derive_sale_items(order_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Turn stored order line items into sale line items.

    Line total is the item's own ``lineTotal`` when present, else price x quantity.
    """
    sale_items = []
    for item in order_items or []:
        quantity = item.get("quantity") or 1
        price = item.get("price") or 0
        line_total = item.get("lineTotal")
        if line_total is None:
            line_total = price * quantity
        sale_items.append({
            "productId": item.get("productId"),
            "name": item.get("name"),
            "price": price,
            "quantity": quantity,
            "lineTotal": line_total,
        })
    return sale_items


def derive_sale_amounts(pricing: Optional[Dict[str, Any]], sale_items: List[Dict[str, Any]]) -> Tuple[float, float, float]:
    """
    Compute (subtotal, tax, total) for an order-derived sale.

    Declared order pricing wins; subtotal falls back to the sum of line totals,
    total falls back to subtotal and tax to 0.
    """
    pricing = pricing or {}
    subtotal = pricing.get("subtotal")
    if subtotal is None:
        subtotal = sum(item["lineTotal"] or 0 for item in sale_items)
    total = pricing.get("total")
    if total is None:
        total = subtotal
    tax = pricing.get("tax") or 0
    return subtotal, tax, total


def _save_sale(db: Session, sale: models.Sale, context: str) -> models.Sale:
    db.add(sale)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{context}: failed to save sale: {e}")
        raise SaleWriteFailed() from e
    db.refresh(sale)
    return sale


def record_sale_for_order(db: Session, order: models.Order, user_id: Optional[str]) -> models.Sale:
    """
    Derive and persist the Sale for a stored Order.

    Args:
        db: Database session
        order: The persisted order
        user_id: Acting user, stored as ``created_by``

    Returns:
        The persisted Sale (source ``order``)

    Raises:
        SaleWriteFailed: if the sale cannot be derived or saved. The order is
            left untouched.
    """
    order_id = order.id
    try:
        items = derive_sale_items(order.items)
        subtotal, tax, total = derive_sale_amounts(order.pricing, items)
    except (TypeError, ValueError) as e:
        logger.error(f"Order {order_id}: cannot derive sale: {e}")
        raise SaleWriteFailed("Cannot derive sale from order") from e

    sale = models.Sale(
        items=items,
        subtotal=subtotal,
        tax=tax,
        total=total,
        source="order",
        order_ref=order_id,
        created_by=user_id,
        meta={},
    )
    sale = _save_sale(db, sale, f"order {order_id}")
    logger.info(f"Sale {sale.id} saved for order {order_id}")
    return sale


def record_sale(db: Session, payload: schemas.SaleCreate, user_id: Optional[str]) -> models.Sale:
    """
    Persist a sale entered by hand. Amounts are stored as given.

    Raises:
        SaleWriteFailed: if the sale cannot be saved
    """
    sale = models.Sale(
        items=[_dump(item) for item in payload.items],
        subtotal=payload.subtotal,
        tax=payload.tax,
        tax_rate=payload.tax_rate,
        total=payload.total,
        source=payload.source,
        order_ref=payload.order_ref,
        created_by=user_id,
        note=payload.note,
        meta=payload.meta,
    )
    sale = _save_sale(db, sale, f"manual sale by {user_id}")
    logger.info(f"Sale {sale.id} recorded by {user_id} (source {sale.source})")
    return sale


def place_order(db: Session, user_id: str, payload: OrderPayload) -> str:
    """
    Place an order and record its sale.

    The order is committed first. The sale is attempted afterwards; if it fails
    the error is logged and the order id is still returned.

    Args:
        db: Database session
        user_id: Authenticated caller
        payload: Order payload

    Returns:
        The new order id

    Raises:
        InvalidOrderPayload: if validation fails (nothing is written)
        PersistenceFailure: if the order insert fails (nothing is written)
    """
    db_order = write_order(db, user_id, payload)
    order_id = db_order.id

    try:
        record_sale_for_order(db, db_order, user_id)
    except SaleWriteFailed:
        logger.exception(f"Order {order_id} saved but its sale was not recorded")

    return order_id


def reconcile_missing_sales(db: Session, user_id: Optional[str]) -> Tuple[int, int]:
    """
    Record the sale for every order that has none.

    Individual failures are logged and skipped, so one bad order does not
    block the rest. Running it again after success records nothing.

    Args:
        db: Database session
        user_id: Admin running the reconciliation

    Returns:
        Tuple of (recorded, failed) counts
    """
    recorded = 0
    failed = 0
    for db_order in crud.get_orders_without_sale(db):
        try:
            record_sale_for_order(db, db_order, db_order.user_id)
            recorded += 1
        except SaleWriteFailed:
            logger.exception(f"Reconcile: sale for order {db_order.id} still failing")
            failed += 1
    logger.info(f"Reconcile by {user_id}: {recorded} sales recorded, {failed} failed")
    return recorded, failed
