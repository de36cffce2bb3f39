# =============================================================================
# utils/countries.py - Country name to ISO 3166 alpha-2 lookup
# =============================================================================

from typing import Optional

from core.exceptions import MappingError


COUNTRY_CODES = {
    'netherlands': 'NL',
    'the netherlands': 'NL',
    'nederland': 'NL',
    'holland': 'NL',
    'belgium': 'BE',
    'belgie': 'BE',
    'belgië': 'BE',
    'luxembourg': 'LU',
    'germany': 'DE',
    'deutschland': 'DE',
    'france': 'FR',
    'united kingdom': 'GB',
    'great britain': 'GB',
    'england': 'GB',
    'uk': 'GB',
    'ireland': 'IE',
    'spain': 'ES',
    'portugal': 'PT',
    'italy': 'IT',
    'switzerland': 'CH',
    'austria': 'AT',
    'denmark': 'DK',
    'norway': 'NO',
    'sweden': 'SE',
    'finland': 'FI',
    'poland': 'PL',
    'czech republic': 'CZ',
    'czechia': 'CZ',
    'united states': 'US',
    'united states of america': 'US',
    'usa': 'US',
    'canada': 'CA',
    'india': 'IN',
    'singapore': 'SG',
    'australia': 'AU',
}

KNOWN_CODES = frozenset(COUNTRY_CODES.values())


def normalize_country_text(text: Optional[str]) -> str:
    """Trim and collapse internal whitespace"""
    if not text:
        return ''
    return ' '.join(str(text).split())


def lookup_country_code(text: Optional[str]) -> str:
    """Map a free-text country name to its two-letter code.

    Matching is case-insensitive and ignores surrounding whitespace. A value
    that already is one of the known codes is returned upper-cased.

    Raises:
        MappingError: when the text is not in the table
    """
    normalized = normalize_country_text(text)
    key = normalized.lower()

    if key in COUNTRY_CODES:
        return COUNTRY_CODES[key]
    if normalized.upper() in KNOWN_CODES:
        return normalized.upper()

    raise MappingError(f"Unrecognized country: {normalized!r}")
