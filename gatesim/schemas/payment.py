from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class Deeplink(BaseModel):
    name: str = ""
    description: str = ""
    link: str = ""
    logo: str = ""

class InvoiceCreateRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    description: Optional[str] = Field(default=None, max_length=255)

class Invoice(BaseModel):
    invoice_id: str
    order_id: str
    qr_image: Optional[str] = None
    qr_text: Optional[str] = None
    short_url: Optional[str] = None
    deeplinks: List[Deeplink] = []
    amount_mnt: int

    class Config:
        from_attributes = True

class InvoiceInDB(Invoice):
    created_at: datetime

class PaymentStatus(BaseModel):
    invoice_id: str
    order_id: Optional[str] = None
    is_paid: bool
    paid_amount: float = 0
    order_status: Optional[str] = None

class WebhookResult(BaseModel):
    success: bool
    message: str
