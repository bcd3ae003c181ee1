from pydantic import BaseModel, Field

class PricingSettings(BaseModel):
    usd_to_mnt_rate: float
    margin_percent: float

class PricingSettingsUpdate(BaseModel):
    usd_to_mnt_rate: float = Field(..., gt=0)
    margin_percent: float = Field(..., ge=0, le=500)
