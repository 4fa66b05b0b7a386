from __future__ import annotations
from datetime import datetime, time, timedelta
import logging
import math

from .models import CANCELLED, IncomeRecord, IncomeSource, PENDING, RECEIVED, STATUSES
from .schedule import (
    BIWEEKLY,
    FREQUENCIES,
    MONTHLY,
    ONE_TIME,
    QUARTERLY,
    WEEKLY,
    WEEKS_OF_MONTH,
    YEARLY,
    ScheduleConfig,
    next_occurrence,
    valid_schedule_days,
)

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    "schedule_days",
    "schedule_weekday",
    "schedule_week",
    "schedule_time",
    "use_manual_amounts",
    "schedule_day_amounts",
)


def day_bounds(when: datetime) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` datetimes of the calendar day of ``when``."""

    start = datetime.combine(when.date(), time())
    return start, start + timedelta(days=1)


def _positive_amount(value) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Amount must be a number, got {value!r}") from None
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError(f"Amount must be a positive number, got {value!r}")
    return amount


def validate_schedule(config: ScheduleConfig) -> None:
    """Raise ``ValueError`` if ``config`` lacks the anchors its frequency needs."""

    if config.frequency not in FREQUENCIES:
        raise ValueError(f"Unknown frequency {config.frequency!r}")
    if config.frequency in (WEEKLY, BIWEEKLY) and config.schedule_weekday is None:
        raise ValueError(f"{config.frequency.lower()} income needs a weekday")
    if config.frequency == BIWEEKLY and config.schedule_week not in WEEKS_OF_MONTH:
        raise ValueError("biweekly income needs a week of the month")
    if config.frequency in (QUARTERLY, YEARLY) and not config.schedule_days:
        raise ValueError(f"{config.frequency.lower()} income needs at least one day")
    if config.frequency == MONTHLY and not valid_schedule_days(config):
        raise ValueError("monthly income needs at least one day with a positive amount")


def create_source(
    session,
    name: str,
    amount: float,
    frequency: str,
    account_id: int = 1,
    category: str = "OTHER",
    **schedule,
) -> IncomeSource:
    """Validate and persist a new income source.

    ``schedule`` holds the ``schedule_*`` and ``use_manual_amounts`` fields of
    :class:`IncomeSource`. Schedule days are stored in their cleaned, sorted
    form.
    """

    source = IncomeSource(account_id=account_id, category=category)
    _apply_source_fields(source, name, amount, frequency, schedule)
    session.add(source)
    session.commit()
    return source


def _apply_source_fields(source: IncomeSource, name, amount, frequency, schedule: dict) -> None:
    unknown = set(schedule) - set(SCHEDULE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown schedule fields: {', '.join(sorted(unknown))}")
    if not name or not name.strip():
        raise ValueError("Income source needs a name")
    amount = _positive_amount(amount)
    config = ScheduleConfig(frequency=frequency, amount=amount, **schedule)
    validate_schedule(config)

    source.name = name.strip()
    source.amount = amount
    source.frequency = config.frequency
    source.schedule_days = list(config.schedule_days) or None
    source.schedule_weekday = config.schedule_weekday
    source.schedule_week = config.schedule_week
    source.schedule_time = config.schedule_time
    source.use_manual_amounts = config.use_manual_amounts
    source.schedule_day_amounts = dict(config.schedule_day_amounts) or None


def get_source(session, source_id: int) -> IncomeSource:
    source = session.get(IncomeSource, source_id)
    if source is None:
        raise ValueError(f"Income source {source_id} not found")
    return source


def update_source(session, source_id: int, **changes) -> IncomeSource:
    """Change an income source and re-validate its schedule.

    Fields not passed keep their current value. ``is_active``, ``category``
    and ``account_id`` may be changed alongside the schedule fields.
    """

    source = get_source(session, source_id)
    fields = {name: getattr(source, name) for name in SCHEDULE_FIELDS}
    fields.update({k: v for k, v in changes.items() if k in SCHEDULE_FIELDS})
    name = changes.pop("name", source.name)
    amount = changes.pop("amount", source.amount)
    frequency = changes.pop("frequency", source.frequency)
    is_active = changes.pop("is_active", None)
    category = changes.pop("category", None)
    account_id = changes.pop("account_id", None)
    unknown = set(changes) - set(SCHEDULE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update {', '.join(sorted(unknown))}")

    # validation runs before any column is touched
    _apply_source_fields(source, name, amount, frequency, fields)
    if is_active is not None:
        source.is_active = bool(is_active)
    if category:
        source.category = category
    if account_id is not None:
        source.account_id = account_id
    session.commit()
    logger.debug("Updated income source %s", source.id)
    return source


def deactivate_source(session, source_id: int) -> IncomeSource:
    """Stop projecting payments for a source while keeping its records."""

    return update_source(session, source_id, is_active=False)


def delete_source(session, source_id: int) -> None:
    """Delete a source together with all of its records."""

    source = get_source(session, source_id)
    session.delete(source)
    session.commit()
    logger.debug("Deleted income source %s", source_id)


def list_records(
    session,
    source_id: int | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    account_id: int | None = None,
) -> list[IncomeRecord]:
    """Return income records, newest expected date first.

    ``start`` and ``end`` bound ``expected_date`` inclusively.
    """

    query = session.query(IncomeRecord).join(IncomeRecord.source)
    if source_id is not None:
        query = query.filter(IncomeRecord.income_source_id == source_id)
    if status is not None:
        status = status.strip().upper()
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}")
        query = query.filter(IncomeRecord.status == status)
    if start is not None:
        query = query.filter(IncomeRecord.expected_date >= start)
    if end is not None:
        query = query.filter(IncomeRecord.expected_date <= end)
    if account_id is not None:
        query = query.filter(IncomeSource.account_id == account_id)
    return query.order_by(IncomeRecord.expected_date.desc(), IncomeRecord.id.desc()).all()


def get_record(session, record_id: int) -> IncomeRecord:
    record = session.get(IncomeRecord, record_id)
    if record is None:
        raise ValueError(f"Income record {record_id} not found")
    return record


def update_record(
    session,
    record_id: int,
    status: str | None = None,
    expected_date: datetime | None = None,
    actual_date: datetime | None = None,
    actual_amount: float | None = None,
    notes: str | None = None,
) -> IncomeRecord:
    """Edit a record; a ``RECEIVED`` record must carry a positive amount."""

    record = get_record(session, record_id)
    if status is not None:
        status = status.strip().upper()
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}")
    new_status = status or record.status
    if actual_amount is not None:
        actual_amount = _positive_amount(actual_amount)
    elif new_status == RECEIVED and not record.actual_amount:
        raise ValueError("A received payment needs an amount")

    record.status = new_status
    if expected_date is not None:
        record.expected_date = expected_date
    if actual_date is not None:
        record.actual_date = actual_date
    if actual_amount is not None:
        record.actual_amount = actual_amount
    if notes is not None:
        record.notes = notes
    session.commit()
    return record


def cancel_record(session, record_id: int) -> IncomeRecord:
    """Cancel an outstanding payment; received payments cannot be cancelled."""

    record = get_record(session, record_id)
    if record.status == RECEIVED:
        raise ValueError("A received payment cannot be cancelled")
    record.status = CANCELLED
    session.commit()
    logger.debug("Cancelled income record %s", record_id)
    return record


def next_payment_date(source: IncomeSource, now: datetime | None = None) -> datetime | None:
    """Return the next payment for an active source, ``None`` otherwise."""

    if not source.is_active or source.frequency == ONE_TIME:
        return None
    return next_occurrence(source.schedule_config(), now or datetime.now())


def record_payment(
    session,
    source: IncomeSource,
    when: datetime,
    amount: float,
    notes: str | None = None,
) -> IncomeRecord:
    """Mark the payment for ``when``'s calendar day as received.

    A pending record on that day is updated in place; otherwise a new
    received record is created so the live projection for the day is
    superseded.
    """

    amount = _positive_amount(amount)
    start, end = day_bounds(when)
    record = (
        session.query(IncomeRecord)
        .filter(
            IncomeRecord.income_source_id == source.id,
            IncomeRecord.status == PENDING,
            IncomeRecord.expected_date >= start,
            IncomeRecord.expected_date < end,
        )
        .order_by(IncomeRecord.expected_date)
        .first()
    )
    if record is None:
        logger.debug("No pending record for %s on %s, creating one", source.name, start.date())
        record = IncomeRecord(income_source_id=source.id, expected_date=when)
        session.add(record)

    record.status = RECEIVED
    record.actual_date = when
    record.actual_amount = amount
    if notes:
        record.notes = notes
    session.commit()
    return record
