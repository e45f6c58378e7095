"""Human-readable booking dates for notification texts.

Month names, day periods and digits come from Babel's CLDR data for the
requester's locale. Languages with a house phrasing get their own pattern;
every other locale gets its CLDR date and short time.
"""
from datetime import datetime

from babel import Locale, UnknownLocaleError
from babel.dates import format_date, format_datetime, format_time

from app.core.config import settings

# CLDR patterns keyed by language
PHRASINGS: dict[str, str] = {
    "pt": "'dia' dd 'de' MMMM', às' H:mm'h'",
    "en": "MMMM dd', at' h:mm a",
    "es": "'día' dd 'de' MMMM', a las' H:mm'h'",
}


def _parse(tag: str | None) -> Locale | None:
    if not tag:
        return None
    try:
        return Locale.parse(tag.strip().replace("-", "_"))
    except (ValueError, UnknownLocaleError):
        return None


def resolve_locale(tag: str | None) -> Locale:
    """The requester's locale, else the configured default, else pt_BR."""
    return _parse(tag) or _parse(settings.default_locale) or Locale("pt", "BR")


def format_booking_date(value: datetime, locale: str | None = None) -> str:
    loc = resolve_locale(locale)
    pattern = PHRASINGS.get(loc.language)
    if pattern:
        return format_datetime(value, pattern, locale=loc)
    return f"{format_date(value, 'd MMMM', locale=loc)}, {format_time(value, 'short', locale=loc)}"
