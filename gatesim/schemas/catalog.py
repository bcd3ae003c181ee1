import json
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, computed_field

DESCRIPTION_MAX_LENGTH = 150
TOP_UP_CATEGORIES = {"esim_addon", "esim_topup", "topup"}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _detail_lookup(details: Any):
    values = {}
    for detail in _as_list(details):
        if isinstance(detail, dict) and "name" in detail:
            values.setdefault(detail["name"], detail.get("value"))
    return values.get


def _parse_description(raw: Optional[str]) -> str:
    if not raw:
        return ""
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        description = str(raw)
    else:
        items = parsed.get("items", []) if isinstance(parsed, dict) else []
        description = ". ".join(str(item) for item in items)
    if len(description) > DESCRIPTION_MAX_LENGTH:
        return description[:DESCRIPTION_MAX_LENGTH] + "..."
    return description


class CatalogOffer(BaseModel):
    """A raw offer from the provider feed. Numeric fields are kept as delivered."""
    class Config:
        frozen = True

    sku: str
    title: str = "Unknown Package"
    data_amount: Any = 0
    data_unit: str = "GB"
    is_unlimited: bool = False
    raw_validity: Any = 0
    countries: List[str] = Field(default_factory=list)
    provider: str = ""
    original_price: Any = 0
    original_currency: str = "USD"
    is_top_up: bool = False
    description: str = ""

    @classmethod
    def from_feed_item(cls, item: dict) -> "CatalogOffer":
        get_value = _detail_lookup(item.get("productDetails"))

        raw_countries = item.get("countries") or []
        if not isinstance(raw_countries, list):
            raise ValueError(f"countries is not a list: {raw_countries!r:.40}")
        countries = []
        for country in raw_countries:
            code = country.get("alpha2Code") if isinstance(country, dict) else country
            if code:
                countries.append(str(code).upper())

        category = str(item.get("productCategory") or "")
        title = get_value("PLAN_TITLE") or category or "Unknown Package"

        return cls(
            sku=str(item.get("productId") or ""),
            title=str(title),
            data_amount=get_value("PLAN_DATA_LIMIT") or "0",
            data_unit=str(get_value("PLAN_DATA_UNIT") or "GB").upper(),
            is_unlimited=str(get_value("UNLIMITED") or "") == "1",
            raw_validity=get_value("PLAN_VALIDITY") or "0",
            countries=countries,
            provider=str(item.get("providerName") or ""),
            original_price=item.get("retailPrice") or 0,
            original_currency=str(item.get("currencyCode") or "USD").upper(),
            is_top_up=category.lower() in TOP_UP_CATEGORIES or str(get_value("TOPUP") or "") == "1",
            description=_parse_description(get_value("PLAN_DETAILS")),
        )


class CanonicalPackage(BaseModel):
    class Config:
        frozen = True

    sku: str
    title: str
    provider: str = ""
    data_amount_mb: int  # -1 means unlimited
    duration_days: int
    countries: List[str] = Field(..., min_length=1)
    sell_price_mnt: int
    currency: str = "MNT"
    is_top_up: bool = False
    description: str = ""
    country_name: str = ""
    original_price: float = 0
    original_currency: str = "USD"

    @computed_field
    @property
    def is_regional(self) -> bool:
        return len(self.countries) > 1

    @computed_field
    @property
    def data_label(self) -> str:
        if self.data_amount_mb == -1:
            return "Unlimited"
        if self.data_amount_mb >= 1024:
            return f"{self.data_amount_mb / 1024:.0f} GB"
        return f"{self.data_amount_mb} MB"


class PricingConfig(BaseModel):
    class Config:
        frozen = True

    usd_to_mnt_rate: float = Field(..., gt=0)
    margin_percent: float = Field(..., ge=0)


class DurationBucket(str, Enum):
    SHORT = "short"    # up to 7 days
    MEDIUM = "medium"  # 8 to 15 days
    LONG = "long"      # more than 15 days


class SortOrder(str, Enum):
    PRICE = "price"
    PRICE_DESC = "price_desc"
    POPULAR = "popular"


class PackageFilter(BaseModel):
    country: Optional[str] = Field(default=None, min_length=2, max_length=6)
    duration: Optional[DurationBucket] = None
    min_days: Optional[int] = Field(default=None, ge=0)
    max_days: Optional[int] = Field(default=None, ge=0)
    min_data_mb: Optional[int] = Field(default=None, ge=0)
    max_data_mb: Optional[int] = Field(default=None, ge=0)
    query: Optional[str] = None
    is_top_up: Optional[bool] = None


class PackageSearchResponse(BaseModel):
    count: int
    packages: List[CanonicalPackage]
