import secrets
import time
from sqlalchemy.orm import Session, joinedload
from typing import Optional, List, Iterable

from gatesim.models.order import Order
from gatesim.schemas.order import OrderCreateInternal, OrderUpdate, OrderStatus, ESIM_HOLDING_STATUSES

def generate_order_id() -> str:
    """Timestamp plus random suffix, e.g. "GS1737360000000A1B2"."""
    return f"GS{int(time.time() * 1000)}{secrets.token_hex(2).upper()}"

def create_order(db: Session, *, obj_in: OrderCreateInternal) -> Order:
    """
    Create a new order.
    obj_in should be of type OrderCreateInternal which includes all necessary fields.
    """
    data = obj_in.model_dump(mode="json")
    db_obj = Order(**data)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def get_order(db: Session, order_id: str) -> Optional[Order]:
    """
    Get a single order by ID, with its invoice eagerly loaded.
    """
    return (
        db.query(Order)
        .options(joinedload(Order.invoice))
        .filter(Order.id == order_id)
        .first()
    )

def get_orders_by_user(
    db: Session, *, user_id: int, statuses: Optional[Iterable[str]] = None, skip: int = 0, limit: int = 100
) -> List[Order]:
    """
    Get a list of orders for a signed-in customer, newest first.
    Soft-deleted orders are never returned.
    """
    query = db.query(Order).filter(Order.user_id == user_id, Order.status != OrderStatus.DELETED.value)
    if statuses is not None:
        query = query.filter(Order.status.in_(list(statuses)))
    return query.order_by(Order.created_at.desc()).offset(skip).limit(limit).all()

def get_esim_holding_orders(db: Session, *, user_id: int) -> List[Order]:
    """
    Orders proving the customer holds an eSIM (paid, provisioning or completed).
    Used by the top-up eligibility check.
    """
    return get_orders_by_user(db, user_id=user_id, statuses=ESIM_HOLDING_STATUSES, limit=500)

def get_orders(
    db: Session, *, status: Optional[str] = None, contact_email: Optional[str] = None,
    include_deleted: bool = False, skip: int = 0, limit: int = 100
) -> List[Order]:
    """
    Admin listing, newest first. Can filter by status and contact email.
    """
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    elif not include_deleted:
        query = query.filter(Order.status != OrderStatus.DELETED.value)
    if contact_email:
        query = query.filter(Order.contact_email == contact_email)
    return query.order_by(Order.created_at.desc()).offset(skip).limit(limit).all()

def update_order(db: Session, *, db_obj: Order, obj_in: OrderUpdate) -> Order:
    """
    Update an order. Primarily used for status changes, the paid invoice id
    and the eSIM details written by provisioning.
    """
    update_data = obj_in.model_dump(mode="json", exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def transition_order_status(
    db: Session, *, order_id: str, from_statuses: Iterable[str], to_status: str, **fields
) -> Optional[Order]:
    """
    Move an order to `to_status` only if it is currently in one of `from_statuses`.
    The check and the write are a single UPDATE, so a second caller racing
    on the same order gets None instead of repeating the transition.
    """
    values = {"status": to_status}
    values.update(fields)
    updated = (
        db.query(Order)
        .filter(Order.id == order_id, Order.status.in_(list(from_statuses)))
        .update(values, synchronize_session=False)
    )
    db.commit()
    if not updated:
        return None
    return get_order(db, order_id=order_id)

def mark_order_paid(db: Session, *, order_id: str, invoice_id: str) -> Optional[Order]:
    """
    pending -> paid. Returns None when the order was not pending
    (already paid, cancelled, ...), leaving it untouched.
    """
    return transition_order_status(
        db, order_id=order_id,
        from_statuses=[OrderStatus.PENDING.value],
        to_status=OrderStatus.PAID.value,
        payment_id=invoice_id,
    )

def soft_delete_order(db: Session, *, order_id: str) -> Optional[Order]:
    """
    Hide an order from customer and admin listings by setting its status to "deleted".
    The record itself is kept. Returns None if the order does not exist.
    """
    db_obj = get_order(db, order_id=order_id)
    if db_obj:
        if db_obj.status != OrderStatus.DELETED.value:
            db_obj.status = OrderStatus.DELETED.value
            db.add(db_obj)
            db.commit()
            db.refresh(db_obj)
        return db_obj
    return None
