"""Date manipulation utilities"""

from datetime import date, timedelta

from buho_gateway.domain.exceptions import InvalidArgument
from buho_gateway.domain.models import DateRange


def trailing_window(days: int, today: date | None = None) -> DateRange:
    """Date range covering the last `days` days, today included"""
    if days < 1:
        raise InvalidArgument(f"window must cover at least one day, got {days}")
    end = today or date.today()
    return DateRange(start=end - timedelta(days=days - 1), end=end)


def validate_range(date_range: DateRange) -> DateRange:
    """Reject ranges that end before they start"""
    if date_range.end < date_range.start:
        raise InvalidArgument(f"date range ends before it starts: {date_range.start} > {date_range.end}")
    return date_range
