"""
Membership-year policy.

The society invites members to pay for year N+1 from a cutoff day in year N
(1 October by default). Before the cutoff, year N is being sold.
"""
from datetime import date, datetime
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from renewals import config
from renewals.errors import ConfigError

# module renewals.membership.dates
def parse_selling_year_start(raw: str) -> Tuple[int, int]:
    """
    Reads a 'MM-DD' cutoff into (month, day).
    - Raises ConfigError if it is not a real calendar day (29 February is refused).
    """
    try:
        month_str, day_str = (raw or "").strip().split("-")
        month, day = int(month_str), int(day_str)
        date(2001, month, day)
    except ValueError as e:
        raise ConfigError(f"illegal SELLING_YEAR_START {raw!r}, expected MM-DD") from e
    return month, day


def server_timezone() -> ZoneInfo:
    try:
        return ZoneInfo(config.TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown TIMEZONE {config.TIMEZONE!r}") from e


def check_year_policy() -> None:
    """Startup check of the cutoff and time zone settings."""
    parse_selling_year_start(config.SELLING_YEAR_START)
    server_timezone()


def now() -> datetime:
    """Current time in the server's time zone."""
    return datetime.now(server_timezone())


def payment_year(when: Optional[datetime] = None, start: Optional[Tuple[int, int]] = None) -> int:
    """
    Returns the membership year on sale at `when` (default: now).
    - Before the cutoff day: the current year.
    - From the cutoff day on: the next year.
    """
    when = when or now()
    month, day = start or parse_selling_year_start(config.SELLING_YEAR_START)
    if (when.month, when.day) < (month, day):
        return when.year
    return when.year + 1


def end_of_year(year: int) -> date:
    """The last day a member who paid for `year` is a member: 31 December."""
    return date(year, 12, 31)
