from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from gatesim.crud import crud_setting
from gatesim.core.countries import resolve_country_code
from gatesim.db.session import get_db
from gatesim.schemas.catalog import (
    CanonicalPackage,
    DurationBucket,
    PackageFilter,
    PackageSearchResponse,
    SortOrder,
)
from gatesim.services.catalog_service import CatalogService, get_catalog_service

router = APIRouter()

@router.get("/search", response_model=PackageSearchResponse)
def search_packages(
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service),
    country: Optional[str] = Query(None, description="ISO code (JP), region code (EU) or English/Mongolian country name"),
    duration: Optional[DurationBucket] = Query(None),
    min_days: Optional[int] = Query(None, ge=0),
    max_days: Optional[int] = Query(None, ge=0),
    min_data: Optional[int] = Query(None, ge=0, description="Minimum data in MB"),
    max_data: Optional[int] = Query(None, ge=0, description="Maximum data in MB"),
    q: Optional[str] = Query(None, max_length=100),
    top_up: Optional[bool] = Query(None),
    sort: SortOrder = Query(SortOrder.PRICE),
    limit: int = Query(200, ge=1, le=1000)
):
    """
    Priced, de-duplicated packages for the storefront.
    Prices are in MNT and use the pricing settings current at request time.
    A feed outage never fails this endpoint; cached or sample offers are served.
    """
    country_code = resolve_country_code(country) if country else None
    if country_code is not None and not 2 <= len(country_code) <= 6: # Not a code or a known name
        return PackageSearchResponse(count=0, packages=[])

    filters = PackageFilter(
        country=country_code,
        duration=duration,
        min_days=min_days,
        max_days=max_days,
        min_data_mb=min_data,
        max_data_mb=max_data,
        query=q,
        is_top_up=top_up,
    )
    pricing = crud_setting.get_pricing_config(db)
    packages = catalog.search(pricing, filters, sort=sort, limit=limit)
    return PackageSearchResponse(count=len(packages), packages=packages)

@router.get("/{sku}", response_model=CanonicalPackage)
def read_package(
    sku: str,
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """
    A single package by provider SKU, priced with the current settings.
    """
    package = catalog.get_package(sku, crud_setting.get_pricing_config(db))
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    return package
