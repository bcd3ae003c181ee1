"""
Country names used for display titles and free-text package search.

Each code maps to (English name, Mongolian name). Codes missing from the
table are displayed as-is.
"""
from typing import Dict, Tuple

COUNTRY_NAMES: Dict[str, Tuple[str, str]] = {
    # Asia
    "JP": ("Japan", "Япон"),
    "KR": ("South Korea", "Солонгос"),
    "CN": ("China", "Хятад"),
    "TH": ("Thailand", "Тайланд"),
    "SG": ("Singapore", "Сингапур"),
    "VN": ("Vietnam", "Вьетнам"),
    "MY": ("Malaysia", "Малайз"),
    "ID": ("Indonesia", "Индонез"),
    "PH": ("Philippines", "Филиппин"),
    "TW": ("Taiwan", "Тайвань"),
    "HK": ("Hong Kong", "Хонг Конг"),
    "MO": ("Macau", "Макао"),
    "IN": ("India", "Энэтхэг"),
    "MN": ("Mongolia", "Монгол"),
    "KZ": ("Kazakhstan", "Казахстан"),
    "UZ": ("Uzbekistan", "Узбекистан"),
    "KG": ("Kyrgyzstan", "Киргиз"),
    "GE": ("Georgia", "Гүрж"),
    # Middle East
    "AE": ("United Arab Emirates", "ОАЭ"),
    "SA": ("Saudi Arabia", "Саудын Араб"),
    "QA": ("Qatar", "Катар"),
    "IL": ("Israel", "Израиль"),
    "TR": ("Turkey", "Турк"),
    # Europe
    "GB": ("United Kingdom", "Их Британи"),
    "DE": ("Germany", "Герман"),
    "FR": ("France", "Франц"),
    "IT": ("Italy", "Итали"),
    "ES": ("Spain", "Испани"),
    "PT": ("Portugal", "Португал"),
    "NL": ("Netherlands", "Нидерланд"),
    "CH": ("Switzerland", "Швейцар"),
    "AT": ("Austria", "Австри"),
    "CZ": ("Czechia", "Чех"),
    "PL": ("Poland", "Польш"),
    "GR": ("Greece", "Грек"),
    "RU": ("Russia", "Орос"),
    # Americas and Oceania
    "US": ("United States", "Америк"),
    "CA": ("Canada", "Канад"),
    "MX": ("Mexico", "Мексик"),
    "BR": ("Brazil", "Бразил"),
    "AU": ("Australia", "Австрали"),
    "NZ": ("New Zealand", "Шинэ Зеланд"),
    # Multi-country scopes used by the feed
    "EU": ("Europe", "Европ"),
    "ASIA": ("Asia", "Ази"),
    "GLOBAL": ("Global", "Дэлхий"),
}

# Packages covering any of these are listed first in "popular" order
POPULAR_COUNTRY_CODES = ("MN", "JP", "KR")

_NAME_ALIASES = {
    "KOREA": "KR",
    "USA": "US",
    "AMERICA": "US",
    "UK": "GB",
    "TURKIYE": "TR",
    "UAE": "AE",
}


def get_country_name(code: str) -> str:
    """Mongolian display name, or the code itself when unknown."""
    names = COUNTRY_NAMES.get(code.upper())
    return names[1] if names else code


def country_search_terms(code: str) -> Tuple[str, ...]:
    names = COUNTRY_NAMES.get(code.upper())
    if not names:
        return (code.lower(),)
    return (code.lower(), names[0].lower(), names[1].lower())


def resolve_country_code(text: str) -> str:
    """Turn "jp", "Japan" or "south korea" into an ISO code; unknown input is upper-cased."""
    upper = text.strip().upper()
    if upper in _NAME_ALIASES:
        return _NAME_ALIASES[upper]
    if len(upper) == 2:
        return upper
    for code, (english, mongolian) in COUNTRY_NAMES.items():
        if upper in (english.upper(), mongolian.upper()):
            return code
    return upper
