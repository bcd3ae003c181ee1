"""
Catalog normalization: raw provider offers -> priced, deduplicated packages.

Every function here is pure. Pricing settings are passed in explicitly so
concurrent requests never share a hidden configuration snapshot.
"""
import logging
import math
import re
from typing import Any, Iterable, List, Optional

from gatesim.core.countries import (
    POPULAR_COUNTRY_CODES,
    country_search_terms,
    get_country_name,
)
from gatesim.core.pricing import compute_sell_price_mnt, to_decimal
from gatesim.schemas.catalog import (
    CanonicalPackage,
    CatalogOffer,
    DurationBucket,
    PackageFilter,
    PricingConfig,
    SortOrder,
)

logger = logging.getLogger(__name__)

UNLIMITED_MB = -1
UNLIMITED_DAYS = -1
HOURS_GUESS_THRESHOLD = 60
MAX_VALIDITY_DAYS = 365

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_TITLE_DAYS = re.compile(r"(\d+)\s*(days?|d)", re.IGNORECASE)


def parse_data_amount_mb(amount: Any, unit: str, unlimited: bool = False) -> int:
    if unlimited:
        return UNLIMITED_MB
    value = to_decimal(amount)
    unit = (unit or "").strip().upper()
    if unit == "MB":
        return int(value)
    if unit == "GB":
        return int(value * 1024)
    return 0


def _parse_leading_int(raw: Any) -> int:
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else 0
    match = _LEADING_INT.match(str(raw or ""))
    return int(match.group(1)) if match else 0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolve_validity_days(raw_validity: Any, title: str = "") -> int:
    """
    Resolve the feed's validity value to days.

    The feed mixes hours and days in the same field. Values above 60 are
    first read as hours; when that is not a plausible day count, or the
    value is 0 or still above 365, the title is scanned for "<N> days".
    If neither works the raw value is returned unchanged. Note that a
    genuine 90-day plan reported as 90 resolves to 4 days.
    """
    validity = _parse_leading_int(raw_validity)

    if validity > HOURS_GUESS_THRESHOLD:
        days_from_hours = _round_half_up(validity / 24)
        if 0 < days_from_hours <= MAX_VALIDITY_DAYS:
            validity = days_from_hours

    if validity == 0 or validity > MAX_VALIDITY_DAYS:
        match = _TITLE_DAYS.search(title or "")
        if match:
            parsed = int(match.group(1))
            if 0 < parsed <= MAX_VALIDITY_DAYS:
                validity = parsed

    return validity


def normalize_offer(offer: CatalogOffer, config: PricingConfig) -> CanonicalPackage:
    countries = list(offer.countries) or ["GLOBAL"]
    return CanonicalPackage(
        sku=offer.sku,
        title=offer.title,
        provider=offer.provider,
        data_amount_mb=parse_data_amount_mb(offer.data_amount, offer.data_unit, offer.is_unlimited),
        duration_days=resolve_validity_days(offer.raw_validity, offer.title),
        countries=countries,
        sell_price_mnt=compute_sell_price_mnt(offer.original_price, offer.original_currency, config),
        is_top_up=offer.is_top_up,
        description=offer.description,
        country_name=get_country_name(countries[0]),
        original_price=float(to_decimal(offer.original_price)),
        original_currency=offer.original_currency,
    )


def dedupe_key(package: CanonicalPackage, country: Optional[str] = None) -> str:
    scope = country.upper() if country else ",".join(sorted(package.countries))
    return f"{scope}-{package.data_amount_mb}-{package.duration_days}"


def dedupe_packages(packages: Iterable[CanonicalPackage], *, country: Optional[str] = None) -> List[CanonicalPackage]:
    """
    Keep the cheapest package per (countries, data, duration).

    With a single-country context the scope is that country alone, so a
    country-only plan and a regional plan covering it compete directly.
    Ties keep the first package seen.
    """
    groups = {}
    for package in packages:
        key = dedupe_key(package, country)
        existing = groups.get(key)
        if existing is None or package.sell_price_mnt < existing.sell_price_mnt:
            groups[key] = package
    return list(groups.values())


def _is_popular(package: CanonicalPackage) -> bool:
    return any(code in package.countries for code in POPULAR_COUNTRY_CODES)


def sort_packages(packages: Iterable[CanonicalPackage], order: SortOrder = SortOrder.PRICE) -> List[CanonicalPackage]:
    ordered = sorted(packages, key=lambda p: p.sell_price_mnt)
    if order == SortOrder.PRICE_DESC:
        ordered.reverse()
    elif order == SortOrder.POPULAR:
        ordered.sort(key=lambda p: (not _is_popular(p), not p.is_regional))
    return ordered


# --- Filter predicates ---

def matches_country(package: CanonicalPackage, country: Optional[str]) -> bool:
    return not country or country.upper() in package.countries


def matches_duration_bucket(package: CanonicalPackage, bucket: Optional[DurationBucket]) -> bool:
    days = package.duration_days
    if bucket is None or days == UNLIMITED_DAYS:
        return True
    if bucket == DurationBucket.SHORT:
        return days <= 7
    if bucket == DurationBucket.MEDIUM:
        return 7 < days <= 15
    return days > 15


def matches_duration_range(package: CanonicalPackage, min_days: Optional[int], max_days: Optional[int]) -> bool:
    days = package.duration_days
    if days == UNLIMITED_DAYS:
        return True
    if min_days is not None and days < min_days:
        return False
    if max_days is not None and days > max_days:
        return False
    return True


def matches_data_range(package: CanonicalPackage, min_mb: Optional[int], max_mb: Optional[int]) -> bool:
    mb = package.data_amount_mb
    if mb == UNLIMITED_MB:
        return True
    if min_mb is not None and mb < min_mb:
        return False
    if max_mb is not None and mb > max_mb:
        return False
    return True


def matches_search(package: CanonicalPackage, query: Optional[str]) -> bool:
    if not query or not query.strip():
        return True
    needle = query.strip().lower()
    haystack = [package.title.lower(), package.provider.lower()]
    for code in package.countries:
        haystack.extend(country_search_terms(code))
    return any(needle in text for text in haystack)


def matches_top_up(package: CanonicalPackage, is_top_up: Optional[bool]) -> bool:
    return is_top_up is None or package.is_top_up == is_top_up


def matches_filters(package: CanonicalPackage, filters: PackageFilter) -> bool:
    return (
        matches_country(package, filters.country)
        and matches_duration_bucket(package, filters.duration)
        and matches_duration_range(package, filters.min_days, filters.max_days)
        and matches_data_range(package, filters.min_data_mb, filters.max_data_mb)
        and matches_search(package, filters.query)
        and matches_top_up(package, filters.is_top_up)
    )


def apply_filters(packages: Iterable[CanonicalPackage], filters: PackageFilter) -> List[CanonicalPackage]:
    return [p for p in packages if matches_filters(p, filters)]


def localize_for_country(package: CanonicalPackage, country: str) -> CanonicalPackage:
    """Put the selected country first on a regional package and retitle it "<name> + N улс"."""
    country = country.upper()
    if not package.is_regional or country not in package.countries:
        return package
    others = [c for c in package.countries if c != country]
    name = get_country_name(country)
    return package.model_copy(update={
        "countries": [country] + others,
        "country_name": name,
        "title": f"{name} + {len(others)} улс",
    })


def normalize_catalog(
    offers: Iterable[CatalogOffer],
    config: PricingConfig,
    *,
    country: Optional[str] = None,
    sort: SortOrder = SortOrder.PRICE,
) -> List[CanonicalPackage]:
    """
    Normalize, deduplicate and sort a raw offer list.

    A single offer that cannot be normalized is logged and skipped; it
    never aborts the rest of the batch.
    """
    packages = []
    for offer in offers:
        try:
            packages.append(normalize_offer(offer, config))
        except Exception as e:
            logger.warning(f"Skipping catalog offer {getattr(offer, 'sku', '?')}: {e}")

    if country:
        packages = [p for p in packages if matches_country(p, country)]
    return sort_packages(dedupe_packages(packages, country=country), sort)
