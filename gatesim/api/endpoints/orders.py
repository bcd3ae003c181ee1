import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from gatesim.crud import crud_order, crud_setting
from gatesim.core.checkout import CheckoutValidationError, TopUpRefusal, validate_checkout
from gatesim.core.dependencies import get_current_user, get_current_active_superuser
from gatesim.db.session import get_db
from gatesim.models.user import User as UserModel
from gatesim.schemas.order import (
    Order,
    OrderCreate,
    OrderCreateInternal,
    OrderItem,
    OrderStatus,
    OrderUpdate,
)
from gatesim.services.catalog_service import CatalogService, get_catalog_service

logger = logging.getLogger(__name__)
router = APIRouter()

_REFUSAL_MESSAGES = {
    TopUpRefusal.LOGIN_REQUIRED.value: "Sign in to buy a top-up for your eSIM.",
    TopUpRefusal.NO_ESIM.value: "A top-up needs an eSIM bought here first.",
    TopUpRefusal.PROVIDER_MISMATCH.value: "This top-up is for a different provider than your eSIM.",
}

@router.post("/", response_model=Order, status_code=201)
def create_new_order(
    order_in: OrderCreate,
    db: Session = Depends(get_db),
    current_user: Optional[UserModel] = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """
    Create a pending order. Guests may check out; a bearer token links the
    order to the customer. Prices come from the catalog, never from the client.
    Top-ups are refused unless the customer holds an eSIM from the same provider.
    """
    pricing = crud_setting.get_pricing_config(db)
    held_orders = None # Loaded once, only when a top-up is in the cart

    items = []
    for item in order_in.items:
        package = catalog.get_package(item.sku, pricing)
        if not package:
            raise HTTPException(status_code=404, detail=f"Package {item.sku} not found")

        if package.is_top_up and held_orders is None and current_user is not None:
            held_orders = crud_order.get_esim_holding_orders(db, user_id=current_user.id)
        try:
            validate_checkout(
                order_in.contact_email,
                is_top_up=package.is_top_up,
                provider=package.provider,
                orders=held_orders,
            )
        except CheckoutValidationError as e:
            logger.info(f"Checkout refused for {order_in.contact_email} ({package.sku}): {e.reason}")
            raise HTTPException(
                status_code=400,
                detail={"reason": e.reason, "message": _REFUSAL_MESSAGES.get(e.reason, str(e))},
            )

        metadata = dict(item.metadata)
        metadata.update({
            "operator": package.provider,
            "is_top_up": package.is_top_up,
            "data_amount_mb": package.data_amount_mb,
            "duration_days": package.duration_days,
            "countries": list(package.countries),
        })
        items.append(OrderItem(
            sku=package.sku,
            name=package.title,
            price=package.sell_price_mnt,
            quantity=item.quantity,
            metadata=metadata,
        ))

    order_internal_data = OrderCreateInternal(
        id=crud_order.generate_order_id(),
        contact_email=order_in.contact_email,
        items=items,
        user_id=current_user.id if current_user else None,
        total_amount=sum(i.price * i.quantity for i in items),
    )
    order = crud_order.create_order(db=db, obj_in=order_internal_data)
    logger.info(f"Order {order.id} created for {order.contact_email}: {order.total_amount} MNT")
    return order

@router.get("/admin/list", response_model=List[Order], tags=["Admin Orders"])
async def admin_list_orders(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser),
    status: Optional[OrderStatus] = Query(None),
    contact_email: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500)
):
    """
    Admin: all orders, newest first. Soft-deleted orders are hidden unless
    include_deleted is set or status=deleted is requested.
    """
    return crud_order.get_orders(
        db,
        status=status.value if status else None,
        contact_email=contact_email,
        include_deleted=include_deleted,
        skip=skip,
        limit=limit,
    )

@router.get("/{order_id}", response_model=Order)
async def read_order_details(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[UserModel] = Depends(get_current_user)
):
    """
    Retrieve a specific order.
    Guest orders are readable by id. An account's order is readable by its
    owner and by superusers.
    """
    db_order = crud_order.get_order(db, order_id=order_id)
    if not db_order or db_order.status == OrderStatus.DELETED.value:
        raise HTTPException(status_code=404, detail="Order not found")

    if db_order.user_id is not None:
        if current_user is None:
            raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
        if not current_user.is_superuser and db_order.user_id != current_user.id:
            raise HTTPException(status_code=403, detail="Not authorized to view this order")

    return db_order

@router.patch("/{order_id}", response_model=Order, tags=["Admin Orders"])
async def update_existing_order(
    order_id: str,
    order_in: OrderUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser)
):
    """
    Admin: update an order's status, payment id or eSIM details.
    """
    db_order = crud_order.get_order(db, order_id=order_id)
    if not db_order:
        raise HTTPException(status_code=404, detail="Order not found")

    logger.info(f"Admin {current_user.email} updating order {order_id}: {order_in.model_dump(exclude_unset=True)}")
    return crud_order.update_order(db=db, db_obj=db_order, obj_in=order_in)

@router.delete("/{order_id}", response_model=Order, tags=["Admin Orders"])
async def delete_order(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser)
):
    """
    Admin: soft delete. The order disappears from listings but the record is kept.
    """
    db_order = crud_order.soft_delete_order(db, order_id=order_id)
    if not db_order:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info(f"Admin {current_user.email} deleted order {order_id}")
    return db_order
