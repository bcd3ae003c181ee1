"""
QPay checkout endpoints
Invoice creation, the status check the checkout page polls, and the
callback QPay calls after a payment.
"""
import logging
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional

from gatesim.core import config
from gatesim.crud import crud_invoice, crud_order
from gatesim.db.session import get_db
from gatesim.schemas.order import OrderStatus
from gatesim.schemas.payment import Invoice, InvoiceCreateRequest, PaymentStatus, WebhookResult
from gatesim.services.mobimatter import MobiMatterClient, get_mobimatter_client
from gatesim.services.provisioning import provision_order
from gatesim.services.qpay import PaymentGatewayError, QPayClient, get_qpay_client

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/qpay", response_model=Invoice)
def create_qpay_invoice(
    *,
    db: Session = Depends(get_db),
    payload: InvoiceCreateRequest,
    qpay: QPayClient = Depends(get_qpay_client)
):
    """
    Issue the QPay invoice for a pending order.
    An order gets one invoice; asking again returns the stored one.
    """
    order = crud_order.get_order(db, order_id=payload.order_id)
    if not order or order.status == OrderStatus.DELETED.value:
        raise HTTPException(status_code=404, detail="Order not found")

    if order.invoice is not None:
        return order.invoice

    if order.status != OrderStatus.PENDING.value:
        raise HTTPException(status_code=400, detail=f"Cannot create an invoice for an order with status: {order.status}")

    description = payload.description or f"GateSIM order #{order.id}"
    try:
        invoice = qpay.create_invoice(order_id=order.id, amount=order.total_amount, description=description)
    except PaymentGatewayError as e:
        logger.error(f"QPay invoice creation failed for order {order.id}: {e}")
        raise HTTPException(status_code=502, detail="Could not create the QPay invoice")

    return crud_invoice.create_invoice(db, obj_in=invoice)

@router.get("/qpay/status", response_model=PaymentStatus)
def read_payment_status(
    invoice_id: str = Query(..., min_length=1),
    order_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    qpay: QPayClient = Depends(get_qpay_client),
    mobimatter: MobiMatterClient = Depends(get_mobimatter_client)
):
    """
    Ask QPay whether the invoice is paid.
    With order_id, a paid answer also moves the order pending -> paid and
    provisions the eSIM. Repeated calls after that change nothing.
    """
    invoice = None
    if order_id:
        invoice = crud_invoice.get_invoice(db, invoice_id)
        if invoice is None or invoice.order_id != order_id:
            raise HTTPException(status_code=404, detail="Invoice not found for this order")

    try:
        result = qpay.check_payment(invoice_id)
    except PaymentGatewayError as e:
        logger.warning(f"QPay payment check failed for invoice {invoice_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment status unavailable")

    order_status = None
    if invoice is not None:
        if result["is_paid"]:
            if crud_order.mark_order_paid(db, order_id=order_id, invoice_id=invoice_id):
                logger.info(f"Order {order_id} marked paid from status check")
                provision_order(db, order_id, client=mobimatter)
        order = crud_order.get_order(db, order_id=order_id)
        order_status = order.status if order else None

    return PaymentStatus(
        invoice_id=invoice_id,
        order_id=order_id,
        is_paid=result["is_paid"],
        paid_amount=result["paid_amount"],
        order_status=order_status,
    )

@router.post("/qpay/webhook", response_model=WebhookResult)
def qpay_webhook(
    order_id: str = Query(..., min_length=1),
    secret: Optional[str] = Query(None),
    payload: Dict[str, Any] = Body(default={}),
    db: Session = Depends(get_db),
    qpay: QPayClient = Depends(get_qpay_client),
    mobimatter: MobiMatterClient = Depends(get_mobimatter_client)
):
    """
    QPay payment callback.
    The callback body is not trusted: payment is re-checked with QPay before
    the order is marked paid and provisioned.
    """
    if config.QPAY_WEBHOOK_SECRET and secret != config.QPAY_WEBHOOK_SECRET:
        logger.warning(f"Rejected QPay callback for order {order_id}: bad secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    order = crud_order.get_order(db, order_id=order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    if order.invoice is None:
        raise HTTPException(status_code=400, detail="No invoice for this order")
    invoice_id = order.invoice.invoice_id
    claimed = payload.get("invoice_id") or payload.get("object_id")
    if claimed and claimed != invoice_id:
        logger.warning(f"QPay callback for order {order_id} names invoice {claimed}, expected {invoice_id}")

    try:
        result = qpay.check_payment(invoice_id)
    except PaymentGatewayError as e:
        logger.error(f"QPay payment check failed in callback for order {order_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment status unavailable")

    if not result["is_paid"]:
        logger.info(f"QPay callback for order {order_id}: invoice {invoice_id} not paid yet")
        return WebhookResult(success=False, message="Payment not confirmed")

    if crud_order.mark_order_paid(db, order_id=order_id, invoice_id=invoice_id):
        logger.info(f"Order {order_id} marked paid from QPay callback")

    # No-op unless the order is still waiting in "paid"
    provisioned = provision_order(db, order_id, client=mobimatter)
    if provisioned is not None and provisioned.status == OrderStatus.PROVISIONING_FAILED.value:
        return WebhookResult(success=True, message="Payment confirmed; eSIM provisioning failed")
    return WebhookResult(success=True, message="Payment confirmed")
