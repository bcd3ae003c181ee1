"""
Catalog service: cached provider feed plus normalization per request.

The raw offer list is the only shared state. Each request prices and
filters its own copy with the PricingConfig it was handed.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from gatesim.core import config
from gatesim.core.catalog import apply_filters, localize_for_country, normalize_catalog, normalize_offer
from gatesim.schemas.catalog import CanonicalPackage, CatalogOffer, PackageFilter, PricingConfig, SortOrder
from gatesim.services.mobimatter import CatalogFeedError, MobiMatterClient, mobimatter_client

logger = logging.getLogger(__name__)


def _sample(sku, title, amount, unit, validity, countries, provider, price, currency="USD", unlimited=False, top_up=False):
    return CatalogOffer(
        sku=sku, title=title, data_amount=amount, data_unit=unit, raw_validity=validity,
        countries=countries, provider=provider, original_price=price, original_currency=currency,
        is_unlimited=unlimited, is_top_up=top_up,
    )


# Served when the feed is unreachable and nothing is cached yet
SAMPLE_OFFERS = (
    _sample("sample-jp-3gb-5d", "Japan 3GB 5 Days", "3", "GB", "5", ["JP"], "eSIMGo", 4.5),
    _sample("sample-jp-10gb-15d", "Japan 10GB 15 Days", "10", "GB", "15", ["JP"], "eSIMGo", 13.0),
    _sample("sample-kr-5gb-7d", "Korea 5GB 7 Days", "5", "GB", "7", ["KR"], "RedteaGO", 8.0),
    _sample("sample-cn-unl-10d", "China Unlimited 10 Days", "0", "GB", "240", ["CN"], "RedteaGO", 16.0, unlimited=True),
    _sample("sample-asia-5gb-30d", "Asia 5GB 30 Days", "5", "GB", "30", ["CN", "JP", "KR", "TH", "SG"], "Sparks", 12.0),
    _sample("sample-jp-topup-1gb", "Japan Top-up 1GB 7 Days", "1", "GB", "7", ["JP"], "eSIMGo", 2.0, top_up=True),
)


class CatalogService:
    def __init__(
        self,
        client: Optional[MobiMatterClient] = None,
        cache_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        fallback_offers: Optional[List[CatalogOffer]] = None,
    ):
        self.client = client or mobimatter_client
        self.cache_seconds = config.CATALOG_CACHE_SECONDS if cache_seconds is None else cache_seconds
        self._clock = clock
        self._fallback = list(SAMPLE_OFFERS if fallback_offers is None else fallback_offers)
        self._offers: Optional[List[CatalogOffer]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        with self._lock:
            self._offers = None
            self._fetched_at = 0.0

    def _is_fresh(self) -> bool:
        return self._offers is not None and (self._clock() - self._fetched_at) < self.cache_seconds

    def get_offers(self) -> List[CatalogOffer]:
        """
        Return the raw offer list, refreshing it when the cache has expired.
        Never raises: a failed fetch serves the stale cache, or the sample
        offers when nothing was ever fetched.
        """
        with self._lock:
            if self._is_fresh():
                return self._offers
            try:
                offers = self.client.fetch_offers()
            except CatalogFeedError as e:
                if self._offers is not None:
                    logger.warning(f"[Catalog] Feed unavailable ({e}); serving {len(self._offers)} cached offers.")
                    return self._offers
                logger.error(f"[Catalog] Feed unavailable ({e}); serving sample offers.")
                return self._fallback
            self._offers = offers
            self._fetched_at = self._clock()
            return offers

    def search(
        self,
        pricing: PricingConfig,
        filters: Optional[PackageFilter] = None,
        *,
        sort: SortOrder = SortOrder.PRICE,
        limit: Optional[int] = None,
    ) -> List[CanonicalPackage]:
        filters = filters or PackageFilter()
        country = filters.country.upper() if filters.country else None
        try:
            packages = normalize_catalog(self.get_offers(), pricing, country=country, sort=sort)
            packages = apply_filters(packages, filters)
        except Exception:
            logger.error("[Catalog] Package search failed; returning an empty list.", exc_info=True)
            return []
        if country:
            packages = [localize_for_country(p, country) for p in packages]
        if limit is not None:
            packages = packages[:limit]
        return packages

    def get_package(self, sku: str, pricing: PricingConfig) -> Optional[CanonicalPackage]:
        for offer in self.get_offers():
            if offer.sku == sku:
                try:
                    return normalize_offer(offer, pricing)
                except Exception as e:
                    logger.warning(f"[Catalog] Offer {sku} cannot be normalized: {e}")
                    return None
        return None


catalog_service = CatalogService()


def get_catalog_service() -> CatalogService:
    return catalog_service
