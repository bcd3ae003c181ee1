import logging
from typing import Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from gatesim.crud import crud_order
from gatesim.models.order import Order
from gatesim.schemas.order import OrderStatus, OrderUpdate
from gatesim.services.mobimatter import MobiMatterClient, ProvisioningError, mobimatter_client

logger = logging.getLogger(__name__)

QR_IMAGE_URL = "https://quickchart.io/qr?text={text}&size=300&margin=1"


def _package_sku(order: Order) -> Optional[str]:
    for item in order.items or []:
        sku = item.get("sku") if isinstance(item, dict) else None
        if sku:
            return sku
    return None


def provision_order(db: Session, order_id: str, client: Optional[MobiMatterClient] = None) -> Optional[Order]:
    """
    paid -> provisioning -> completed | provisioning_failed.

    Only a paid order is picked up; the status guard means a webhook and a
    status poll arriving together cannot both place a provider order.
    Returns the updated order, or None if it was not in the paid state.
    """
    order = crud_order.transition_order_status(
        db, order_id=order_id,
        from_statuses=[OrderStatus.PAID.value],
        to_status=OrderStatus.PROVISIONING.value,
    )
    if order is None:
        logger.info(f"Order {order_id} is not awaiting provisioning; skipping.")
        return None

    client = client or mobimatter_client
    sku = _package_sku(order)
    try:
        if not sku:
            raise ProvisioningError("No package SKU found in order")
        esim = client.create_order(sku)
    except ProvisioningError as e:
        logger.error(f"eSIM provisioning failed for order {order_id}: {e}")
        return crud_order.update_order(db, db_obj=order, obj_in=OrderUpdate(
            status=OrderStatus.PROVISIONING_FAILED,
            provisioning_error=str(e),
        ))
    except Exception as e:
        logger.error(f"Unexpected error provisioning order {order_id}", exc_info=True)
        return crud_order.update_order(db, db_obj=order, obj_in=OrderUpdate(
            status=OrderStatus.PROVISIONING_FAILED,
            provisioning_error=f"Unexpected provisioning error: {e}",
        ))

    esim["qr_url"] = QR_IMAGE_URL.format(text=quote(esim.get("qr_data") or esim.get("lpa") or ""))
    logger.info(f"eSIM {esim.get('iccid')} provisioned for order {order_id}")
    return crud_order.update_order(db, db_obj=order, obj_in=OrderUpdate(
        status=OrderStatus.COMPLETED,
        esim=esim,
        provisioning_error=None,
    ))
