from enum import Enum
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Any, Dict
from datetime import datetime


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROVISIONING = "provisioning"
    COMPLETED = "completed"
    PROVISIONING_FAILED = "provisioning_failed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REFUNDED = "refunded"
    DELETED = "deleted" # Soft delete from the admin screen; the record is kept

# Orders that prove the customer already holds an eSIM
ESIM_HOLDING_STATUSES = (OrderStatus.PAID.value, OrderStatus.PROVISIONING.value, OrderStatus.COMPLETED.value)


class OrderItem(BaseModel):
    sku: str = Field(..., min_length=1)
    name: str = ""
    price: int = Field(default=0, ge=0) # MNT per unit
    quantity: int = Field(default=1, ge=1)
    metadata: Dict[str, Any] = Field(default_factory=dict) # e.g. {"operator": "eSIMGo", "is_top_up": false}


class OrderBase(BaseModel):
    contact_email: EmailStr
    items: List[OrderItem] = Field(..., min_length=1)


class OrderCreate(OrderBase):
    """
    Schema for data provided by the client when checkout begins.
    - Prices are re-read from the catalog on the server; client prices are ignored.
    - user_id is derived from the bearer token when one is sent.
    """
    pass


class OrderCreateInternal(OrderBase):
    """
    Schema for creating an order in the database, including fields derived
    by the system or set by default.
    """
    id: str = Field(..., max_length=40)
    user_id: Optional[int] = None
    total_amount: int = Field(..., ge=0)
    currency: str = Field(default="MNT", max_length=3)
    status: OrderStatus = OrderStatus.PENDING
    payment_method: str = Field(default="qpay", max_length=50)


class OrderUpdate(BaseModel):
    """
    Schema for updating an order, typically for status changes by the system or an admin.
    """
    status: Optional[OrderStatus] = None
    payment_id: Optional[str] = Field(default=None, max_length=255)
    esim: Optional[Dict[str, Any]] = None
    provisioning_error: Optional[str] = None


class Order(OrderBase): # Full schema for returning order data to the client
    id: str
    user_id: Optional[int] = None
    total_amount: int
    currency: str
    status: OrderStatus
    payment_method: str
    payment_id: Optional[str] = None
    esim: Optional[Dict[str, Any]] = None
    provisioning_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
