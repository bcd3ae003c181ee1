import logging
import os
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Optional

from gatesim.core import config
from gatesim.models.setting import Setting
from gatesim.schemas.catalog import PricingConfig

logger = logging.getLogger(__name__)

PRICING_SETTINGS_KEY = "pricing_config"

def get_setting(db: Session, key: str) -> Optional[Setting]:
    return db.query(Setting).filter(Setting.key == key).first()

def set_setting(db: Session, *, key: str, value: Any) -> Setting:
    db_obj = get_setting(db, key)
    if db_obj is None:
        db_obj = Setting(key=key, value=value)
    else:
        db_obj.value = value
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def _positive_number(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default

def get_pricing_config(db: Session) -> PricingConfig:
    """
    Read {usdToMnt, marginPercent} from the settings store.
    Missing or zero values fall back to the defaults; a database failure
    falls back to the USD_TO_MNT / MARGIN_PERCENT environment variables.
    """
    defaults = PricingConfig(
        usd_to_mnt_rate=config.DEFAULT_USD_TO_MNT,
        margin_percent=config.DEFAULT_MARGIN_PERCENT,
    )
    try:
        setting = get_setting(db, PRICING_SETTINGS_KEY)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load pricing settings from DB: {e}")
        db.rollback()
        return PricingConfig(
            usd_to_mnt_rate=_positive_number(os.getenv("USD_TO_MNT"), defaults.usd_to_mnt_rate),
            margin_percent=_positive_number(os.getenv("MARGIN_PERCENT"), defaults.margin_percent),
        )

    if setting is None or not isinstance(setting.value, dict):
        return defaults

    return PricingConfig(
        usd_to_mnt_rate=_positive_number(setting.value.get("usdToMnt"), defaults.usd_to_mnt_rate),
        margin_percent=_positive_number(setting.value.get("marginPercent"), defaults.margin_percent),
    )

def set_pricing_config(db: Session, *, pricing: PricingConfig) -> PricingConfig:
    set_setting(db, key=PRICING_SETTINGS_KEY, value={
        "usdToMnt": pricing.usd_to_mnt_rate,
        "marginPercent": pricing.margin_percent,
    })
    return pricing
