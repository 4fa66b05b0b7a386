"""Payment schedule engine for recurring income sources.

Everything here is pure date arithmetic: given a :class:`ScheduleConfig` and a
reference datetime the functions work out when the next payment lands, which
payments fall inside a horizon and which ones were due recently. Nothing is
read from or written to the database.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import calendar
import logging
import math
from typing import Any, Iterator, Mapping, NamedTuple

logger = logging.getLogger(__name__)

WEEKLY = "WEEKLY"
BIWEEKLY = "BIWEEKLY"
MONTHLY = "MONTHLY"
QUARTERLY = "QUARTERLY"
YEARLY = "YEARLY"
ONE_TIME = "ONE_TIME"

FREQUENCIES = [WEEKLY, BIWEEKLY, MONTHLY, QUARTERLY, YEARLY, ONE_TIME]

WEEKS_OF_MONTH = ["FIRST", "SECOND", "THIRD", "FOURTH", "LAST"]

# 0 = Sunday, matching scheduleWeekday
WEEKDAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]

# day-of-month 31 always means "last day of the month"
LAST_DAY = 31
QUARTER_MONTHS = (4, 7, 10)
DEFAULT_TIME = (9, 0)
MAX_OCCURRENCES = 100


class PaymentOccurrence(NamedTuple):
    """A single dated payment and the amount expected on that date."""

    date: datetime
    amount: float


def _as_amount(value: Any) -> float:
    """Return ``value`` as a float, or ``0.0`` when it is not a finite number."""

    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def _day_key(value: Any) -> str:
    # 5, 5.0, "05" and "5.0" all address day 5
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value).strip()
    if number.is_integer():
        return str(int(number))
    return str(value).strip()


def _clean_days(days: Any) -> tuple[int, ...]:
    if not isinstance(days, (list, tuple, set, frozenset)):
        return ()
    cleaned: set[int] = set()
    for day in days:
        try:
            day = int(day)
        except (TypeError, ValueError):
            continue
        if 1 <= day <= LAST_DAY:
            cleaned.add(day)
    return tuple(sorted(cleaned))


def _clean_weekday(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        weekday = int(value)
    except (TypeError, ValueError):
        return None
    return weekday if 0 <= weekday <= 6 else None


@dataclass(frozen=True)
class ScheduleConfig:
    """Declarative description of when and how much an income source pays.

    ``schedule_days`` are day-of-month anchors (31 is the last day of any
    month), ``schedule_weekday`` counts from Sunday = 0 and ``schedule_week``
    picks the week of the month for ``BIWEEKLY`` sources.
    ``schedule_day_amounts`` may be keyed by ``int`` or ``str`` days; keys are
    normalised to strings on construction.
    """

    frequency: str
    amount: Any = 0.0
    schedule_days: tuple[int, ...] = ()
    schedule_weekday: int | None = None
    schedule_week: str | None = None
    schedule_time: str | None = None
    use_manual_amounts: bool = False
    schedule_day_amounts: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # wrong-typed fields are treated as missing
        frequency = self.frequency if isinstance(self.frequency, str) else ""
        week = self.schedule_week if isinstance(self.schedule_week, str) else ""
        amounts = self.schedule_day_amounts
        if not isinstance(amounts, Mapping):
            amounts = {}
        amounts = {_day_key(day): value for day, value in amounts.items()}
        object.__setattr__(self, "frequency", frequency.strip().upper())
        week = week.strip().upper() or None
        object.__setattr__(self, "schedule_days", _clean_days(self.schedule_days))
        object.__setattr__(self, "schedule_weekday", _clean_weekday(self.schedule_weekday))
        object.__setattr__(self, "schedule_week", week)
        object.__setattr__(self, "use_manual_amounts", bool(self.use_manual_amounts))
        object.__setattr__(self, "schedule_day_amounts", amounts)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScheduleConfig":
        """Build a config from a plain mapping with camelCase or snake_case keys."""

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            frequency=pick("frequency", "frequency", ""),
            amount=pick("amount", "amount", 0.0),
            schedule_days=pick("schedule_days", "scheduleDays", ()),
            schedule_weekday=pick("schedule_weekday", "scheduleWeekday"),
            schedule_week=pick("schedule_week", "scheduleWeek"),
            schedule_time=pick("schedule_time", "scheduleTime"),
            use_manual_amounts=pick("use_manual_amounts", "useManualAmounts", False),
            schedule_day_amounts=pick("schedule_day_amounts", "scheduleDayAmounts", {}),
        )


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def resolve_day(year: int, month: int, day: int) -> date:
    """Return the calendar date of schedule ``day`` in the given month.

    ``31`` and any day past the end of a short month resolve to the month's
    last day, so day 30 in February lands on the 28th (or 29th).
    """

    last = last_day_of_month(year, month)
    if day == LAST_DAY or day > last:
        return date(year, month, last)
    return date(year, month, day)


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def _weekday(d: date) -> int:
    return (d.weekday() + 1) % 7


def _parse_time(value: str | None) -> tuple[int, int]:
    if not value:
        return DEFAULT_TIME
    try:
        hours, minutes = (int(part) for part in str(value).strip().split(":")[:2])
    except ValueError:
        logger.debug("Unparseable schedule time %r, using default", value)
        return DEFAULT_TIME
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        logger.debug("Schedule time %r out of range, using default", value)
        return DEFAULT_TIME
    return hours, minutes


def _at_time(day: date, config: ScheduleConfig, tzinfo=None) -> datetime:
    hours, minutes = _parse_time(config.schedule_time)
    return datetime.combine(day, time(hours, minutes), tzinfo=tzinfo)


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


def _manual_amount(config: ScheduleConfig, day: int) -> float | None:
    """Return the manual amount configured for ``day`` or ``None`` if unset."""

    key = _day_key(day)
    if key not in config.schedule_day_amounts:
        return None
    return _as_amount(config.schedule_day_amounts[key])


def valid_schedule_days(config: ScheduleConfig) -> tuple[int, ...]:
    """Return the schedule days that can produce a payment.

    With manual amounts enabled a day only counts when its own amount is
    positive.
    """

    if not config.use_manual_amounts:
        return config.schedule_days
    return tuple(
        day
        for day in config.schedule_days
        if (_manual_amount(config, day) or 0.0) > 0
    )


def schedule_day_for(config: ScheduleConfig, when: date) -> int:
    """Map a payment date back to the schedule day that produced it."""

    days = valid_schedule_days(config)
    if when.day == last_day_of_month(when.year, when.month) and LAST_DAY in days:
        return LAST_DAY
    if when.day in days:
        return when.day
    for day in days:
        if resolve_day(when.year, when.month, day).day == when.day:
            return day
    return when.day


def per_occurrence_amount(config: ScheduleConfig, day: int | None = None) -> float:
    """Return the amount paid on a single occurrence.

    A ``0`` result means "no payment" and must not be shown to the user.
    Multiple monthly days split ``amount`` evenly unless manual amounts are
    enabled and ``day`` has its own entry.
    """

    amount = _as_amount(config.amount)
    if amount <= 0:
        return 0.0
    if config.frequency == MONTHLY and config.use_manual_amounts and day is not None:
        manual = _manual_amount(config, day)
        if manual is not None:
            return manual
    if config.frequency == MONTHLY and len(config.schedule_days) > 1:
        return amount / len(config.schedule_days)
    return amount


def _next_weekly(config: ScheduleConfig, from_date: datetime) -> datetime | None:
    if config.schedule_weekday is None:
        logger.debug("Weekly schedule has no weekday")
        return None
    days_until = config.schedule_weekday - _weekday(from_date)
    if days_until <= 0:
        days_until += 7
    return _at_time(from_date.date() + timedelta(days=days_until), config, from_date.tzinfo)


def _week_start(week: str, year: int, month: int) -> date:
    first_weekday = _weekday(date(year, month, 1))
    if week == "FIRST":
        return date(year, month, 1)
    if week == "SECOND":
        return date(year, month, 8 - first_weekday)
    if week == "THIRD":
        return date(year, month, 15 - first_weekday)
    if week == "FOURTH":
        return date(year, month, 22 - first_weekday)
    # LAST: the final seven days of the month
    return date(year, month, last_day_of_month(year, month) - 6)


def _day_in_week(week_start: date, weekday: int) -> date:
    return week_start + timedelta(days=(weekday - _weekday(week_start)) % 7)


def _next_biweekly(config: ScheduleConfig, from_date: datetime) -> datetime | None:
    if config.schedule_weekday is None or config.schedule_week not in WEEKS_OF_MONTH:
        logger.debug("Biweekly schedule needs both a weekday and a week of month")
        return None
    year, month = from_date.year, from_date.month
    target = _day_in_week(_week_start(config.schedule_week, year, month), config.schedule_weekday)
    if target <= from_date.date():
        year, month = shift_month(year, month, 1)
        target = _day_in_week(
            _week_start(config.schedule_week, year, month), config.schedule_weekday
        )
    return _at_time(target, config, from_date.tzinfo)


def _next_monthly(config: ScheduleConfig, from_date: datetime) -> datetime | None:
    days = valid_schedule_days(config)
    if not days:
        logger.debug("Monthly schedule has no payable days")
        return None
    year, month = from_date.year, from_date.month
    for day in days:
        candidate = resolve_day(year, month, day)
        if candidate > from_date.date():
            return _at_time(candidate, config, from_date.tzinfo)
    year, month = shift_month(year, month, 1)
    return _at_time(resolve_day(year, month, days[0]), config, from_date.tzinfo)


def _next_quarterly(config: ScheduleConfig, from_date: datetime) -> datetime | None:
    if not config.schedule_days:
        logger.debug("Quarterly schedule has no days")
        return None
    year = from_date.year
    month = next((m for m in QUARTER_MONTHS if m > from_date.month), None)
    if month is None:
        year, month = year + 1, 1
    return _at_time(resolve_day(year, month, config.schedule_days[0]), config, from_date.tzinfo)


def _next_yearly(config: ScheduleConfig, from_date: datetime) -> datetime | None:
    if not config.schedule_days:
        logger.debug("Yearly schedule has no days")
        return None
    # always January of the following year, even if this January is still ahead
    year = from_date.year + 1
    return _at_time(resolve_day(year, 1, config.schedule_days[0]), config, from_date.tzinfo)


_NEXT = {
    WEEKLY: _next_weekly,
    BIWEEKLY: _next_biweekly,
    MONTHLY: _next_monthly,
    QUARTERLY: _next_quarterly,
    YEARLY: _next_yearly,
}


def next_occurrence(config: ScheduleConfig, from_date: date | datetime) -> datetime | None:
    """Return the first payment strictly after ``from_date``.

    ``None`` is returned for ``ONE_TIME`` sources, unknown frequencies and
    configs missing the anchors their frequency needs.
    """

    handler = _NEXT.get(config.frequency)
    if handler is None:
        if config.frequency != ONE_TIME:
            logger.debug("Unknown frequency %r", config.frequency)
        return None
    return handler(config, _as_datetime(from_date))


def upcoming_occurrences(
    config: ScheduleConfig,
    from_date: date | datetime,
    days_ahead: int = 30,
) -> Iterator[PaymentOccurrence]:
    """Yield payments falling after ``from_date`` and within ``days_ahead`` days.

    Each search restarts at the end of the previous payment's day. Payments with
    a non-positive amount are skipped, and at most ``MAX_OCCURRENCES`` dates
    are examined.
    """

    if config.frequency == ONE_TIME:
        return
    start = _as_datetime(from_date)
    end = start + timedelta(days=days_ahead)
    when = next_occurrence(config, start)
    for _ in range(MAX_OCCURRENCES):
        if when is None or when > end:
            return
        day = schedule_day_for(config, when) if config.frequency == MONTHLY else None
        amount = per_occurrence_amount(config, day)
        if amount > 0:
            yield PaymentOccurrence(when, amount)
        else:
            logger.debug("Dropping payment on %s with amount %r", when.date(), amount)
        # resume at the end of the payment's day so the following day still counts
        when = next_occurrence(config, datetime.combine(when.date(), time.max, tzinfo=when.tzinfo))


def recent_occurrences(
    config: ScheduleConfig,
    to_date: date | datetime,
    days_before: int = 30,
) -> list[PaymentOccurrence]:
    """Return payments due in the ``days_before`` days up to ``to_date``.

    The result is newest first. Every payment uses the plain
    :func:`per_occurrence_amount`; manual per-day amounts are not applied.
    """

    if config.frequency == ONE_TIME:
        return []
    end = _as_datetime(to_date)
    start = end - timedelta(days=days_before)
    amount = per_occurrence_amount(config)
    if amount <= 0:
        logger.debug("No recent payments: amount %r is not payable", config.amount)
        return []

    found: dict[date, datetime] = {}
    cursor = start
    while cursor <= end and len(found) < MAX_OCCURRENCES:
        when = next_occurrence(config, cursor)
        if when is not None and start <= when <= end:
            found.setdefault(when.date(), when)
        cursor += timedelta(days=1)
    return [
        PaymentOccurrence(when, amount)
        for when in sorted(found.values(), reverse=True)
    ]
