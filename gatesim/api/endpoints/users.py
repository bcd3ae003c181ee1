from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from gatesim.crud import crud_order, crud_user
from gatesim.core.dependencies import get_current_active_user
from gatesim.db.session import get_db
from gatesim.models.user import User as UserModel
from gatesim.schemas.order import Order
from gatesim.schemas.user import User, UserUpdate

router = APIRouter()

@router.get("/me", response_model=User)
async def read_user_me(
    current_user: UserModel = Depends(get_current_active_user)
):
    """
    Get the signed-in customer's profile.
    """
    return current_user

@router.put("/me", response_model=User)
def update_user_me(
    *,
    db: Session = Depends(get_db),
    user_in: UserUpdate,
    current_user: UserModel = Depends(get_current_active_user)
):
    """
    Update name, phone or password. Role and flags are admin-only and ignored here.
    """
    allowed = UserUpdate(**user_in.model_dump(exclude_unset=True, include={"full_name", "phone", "password"}))
    return crud_user.update_user(db=db, db_obj=current_user, obj_in=allowed)

@router.get("/me/orders", response_model=List[Order])
def read_my_orders(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500)
):
    """
    The signed-in customer's orders, newest first. Also used by checkout
    to decide whether a top-up may be bought.
    """
    return crud_order.get_orders_by_user(db, user_id=current_user.id, skip=skip, limit=limit)
