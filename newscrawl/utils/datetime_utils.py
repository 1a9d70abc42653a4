import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

TEXT_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%Y/%m/%d",
)


def to_utc(dt: datetime) -> datetime:
    """Return `dt` as an aware UTC datetime; naive values are assumed to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_to_utc(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO datetime string or datetime object and return an aware UTC datetime.

    Returns None if parsing fails or value is None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Could not parse datetime string: %s", value)
        return None
    return to_utc(dt)


def parse_text_date(text: Optional[str], formats: Iterable[str] = TEXT_DATE_FORMATS) -> Optional[datetime]:
    """Try each strptime format against free text such as 'March 3, 2025'."""
    if not text:
        return None
    text = text.strip()
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def from_timestamp_millis(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
