import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gatesim.crud import crud_setting
from gatesim.core.dependencies import get_current_active_superuser
from gatesim.db.session import get_db
from gatesim.models.user import User as UserModel
from gatesim.schemas.catalog import PricingConfig
from gatesim.schemas.settings import PricingSettings, PricingSettingsUpdate

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/pricing", response_model=PricingSettings)
def read_pricing_settings(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser)
):
    """
    Admin: the exchange rate and margin used to price the catalog.
    """
    pricing = crud_setting.get_pricing_config(db)
    return PricingSettings(usd_to_mnt_rate=pricing.usd_to_mnt_rate, margin_percent=pricing.margin_percent)

@router.put("/pricing", response_model=PricingSettings)
def update_pricing_settings(
    *,
    db: Session = Depends(get_db),
    settings_in: PricingSettingsUpdate,
    current_user: UserModel = Depends(get_current_active_superuser)
):
    """
    Admin: change the exchange rate and margin. The next catalog request
    is priced with the new values.
    """
    pricing = crud_setting.set_pricing_config(db, pricing=PricingConfig(**settings_in.model_dump()))
    logger.info(f"Admin {current_user.email} set pricing: rate={pricing.usd_to_mnt_rate}, margin={pricing.margin_percent}%")
    return PricingSettings(usd_to_mnt_rate=pricing.usd_to_mnt_rate, margin_percent=pricing.margin_percent)
