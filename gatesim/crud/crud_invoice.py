from sqlalchemy.orm import Session
from typing import Optional

from gatesim.models.invoice import Invoice
from gatesim.schemas.payment import Invoice as InvoiceSchema

def create_invoice(db: Session, *, obj_in: InvoiceSchema) -> Invoice:
    """
    Store the invoice QPay issued for an order. Invoices are never updated.
    """
    db_obj = Invoice(**obj_in.model_dump())
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def get_invoice(db: Session, invoice_id: str) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.invoice_id == invoice_id).first()

def get_invoice_by_order(db: Session, *, order_id: str) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.order_id == order_id).first()
