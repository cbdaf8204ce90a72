"""
Date Normalization
==================

Turns the free-form date text found on web pages into timezone-aware
instants. Parsing never fails a feed: anything unparsable yields None.
"""

from datetime import datetime, time, timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil import parser as dateutil_parser

from ..config.feeds import DateKind, DateSpec
from ..utils.exceptions import DateParseFailure
from ..utils.logging import get_logger_for_component

# Tried in order after RFC 2822 and ISO 8601
COMMON_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d.%m.%Y",
)

# Two fixed fallbacks for dateutil; a result that depends on them is incomplete
DATEUTIL_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def trim_date(value: str) -> str:
    """Strip non-alphanumeric characters from both ends of ``value``."""
    start, end = 0, len(value)
    while start < end and not value[start].isalnum():
        start += 1
    while end > start and not value[end - 1].isalnum():
        end -= 1
    return value[start:end]


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class DateNormalizer:
    """Parse date strings according to a ``DateSpec``.

    Precedence: the machine-readable attribute of a ``<time>`` element,
    then the explicit format, then ordered heuristics.
    """

    def __init__(self, reference_timezone: str = "UTC"):
        self.reference_tz = resolve_timezone(reference_timezone)
        self.logger = get_logger_for_component("dates")

    def parse(
        self,
        raw_text: Optional[str],
        attribute_text: Optional[str] = None,
        date_spec: Optional[DateSpec] = None,
    ) -> Optional[datetime]:
        """Return the instant described by the inputs, or None."""
        kind = date_spec.type if date_spec else DateKind.DATETIME
        date_format = date_spec.format if date_spec else None

        if attribute_text:
            candidate = trim_date(attribute_text)
            self.logger.debug("trying datetime attribute")
            try:
                parsed = self._parse_attribute(candidate, kind, date_format)
                self.logger.debug("using datetime attribute")
                return parsed
            except DateParseFailure:
                pass

        text = trim_date(raw_text or "")
        try:
            if date_format:
                return self._parse_with_format(text, kind, date_format)
            return self._parse_heuristic(text, kind)
        except DateParseFailure as e:
            self.logger.warning(f"unable to parse date '{text}'", extra=e.to_dict())
            return None

    def _parse_attribute(
        self, value: str, kind: DateKind, date_format: Optional[str]
    ) -> datetime:
        try:
            return self._normalize(datetime.fromisoformat(value), kind)
        except ValueError:
            pass
        if date_format:
            return self._parse_with_format(value, kind, date_format)
        raise DateParseFailure("datetime attribute is not ISO 8601", raw_value=value)

    def _parse_with_format(
        self, value: str, kind: DateKind, date_format: str
    ) -> datetime:
        try:
            parsed = datetime.strptime(value, date_format)
        except ValueError as e:
            raise DateParseFailure(
                f"'{value}' does not match format '{date_format}': {e}", raw_value=value
            )
        return self._normalize(parsed, kind)

    def _parse_heuristic(self, value: str, kind: DateKind) -> datetime:
        if not value:
            raise DateParseFailure("empty date", raw_value=value)

        try:
            return self._normalize(parsedate_to_datetime(value), kind)
        except (TypeError, ValueError, IndexError):
            pass

        try:
            return self._normalize(datetime.fromisoformat(value), kind)
        except ValueError:
            pass

        for candidate in COMMON_FORMATS:
            try:
                return self._normalize(datetime.strptime(value, candidate), kind)
            except ValueError:
                continue

        try:
            first, second = (
                dateutil_parser.parse(value, default=default)
                for default in DATEUTIL_DEFAULTS
            )
        except (dateutil_parser.ParserError, ValueError, OverflowError):
            pass
        else:
            # Fields missing from the text come from the default
            if first == second:
                return self._normalize(first, kind)
            raise DateParseFailure(f"incomplete date '{value}'", raw_value=value)

        raise DateParseFailure(f"unrecognised date '{value}'", raw_value=value)

    def _normalize(self, value: datetime, kind: DateKind) -> datetime:
        """Attach the reference zone to naive values; Date kinds become midnight."""
        if kind == DateKind.DATE:
            return datetime.combine(value.date(), time(0, 0), tzinfo=self.reference_tz)
        if value.tzinfo is None:
            return value.replace(tzinfo=self.reference_tz)
        return value
