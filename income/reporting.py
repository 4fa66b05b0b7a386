"""Period summaries and the upcoming-payments feed.

Both views combine persisted :class:`IncomeRecord` rows with live projections
from the schedule engine. A persisted record always wins over a projection for
the same source and calendar day.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import CANCELLED, IncomeRecord, IncomeSource, OVERDUE, PENDING, RECEIVED
from .schedule import (
    ONE_TIME,
    PaymentOccurrence,
    per_occurrence_amount,
    shift_month,
    upcoming_occurrences,
)

logger = logging.getLogger(__name__)

PERIODS = ["monthly", "yearly"]

UPCOMING_DAYS = 60
FEED_LIMIT = 10
RECENT_LIMIT = 10
# window used to look up the scheduled amount of a single persisted record
LOOKUP_DAYS = 90


@dataclass
class SourceBreakdown:
    """Per-source totals for a reporting period."""

    id: int
    name: str
    category: str
    frequency: str
    base_amount: float
    is_active: bool
    expected: float = 0.0
    received: float = 0.0
    pending: float = 0.0
    overdue: float = 0.0


@dataclass
class MonthlyProjection:
    month: int
    expected: float
    received: float


@dataclass
class UpcomingPayment:
    """One entry of the upcoming-payments feed."""

    source_id: int
    source_name: str
    category: str
    expected_date: datetime
    expected_amount: float
    status: str = PENDING
    record_id: int | None = None

    @property
    def is_existing_record(self) -> bool:
        return self.record_id is not None


@dataclass
class IncomeStatistics:
    period: str
    year: int
    month: int | None
    total_expected: float = 0.0
    total_received: float = 0.0
    total_pending: float = 0.0
    total_overdue: float = 0.0
    sources: list[SourceBreakdown] = field(default_factory=list)
    monthly_projections: list[MonthlyProjection] = field(default_factory=list)
    recent_payments: list[IncomeRecord] = field(default_factory=list)
    upcoming_payments: list[UpcomingPayment] = field(default_factory=list)

    @property
    def receipt_rate(self) -> float:
        """Received as a percentage of expected, ``0`` when nothing is expected."""
        if self.total_expected <= 0:
            return 0.0
        return self.total_received / self.total_expected * 100


def period_bounds(period: str, year: int, month: int | None = None) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` datetimes of a monthly or yearly period."""

    period = period.strip().lower()
    if period not in PERIODS:
        raise ValueError(f"Unknown period {period!r}")
    if period == "yearly":
        return datetime(year, 1, 1), datetime(year + 1, 1, 1)
    if month is None or not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month!r}")
    end_year, end_month = shift_month(year, month, 1)
    return datetime(year, month, 1), datetime(end_year, end_month, 1)


def expected_occurrences(
    source: IncomeSource, start: datetime, end: datetime
) -> list[PaymentOccurrence]:
    """Return the engine's payments for ``source`` with ``start <= date < end``.

    The range is walked one calendar month at a time so long periods are not
    truncated by the engine's per-call occurrence cap.
    """

    config = source.schedule_config()
    occurrences: list[PaymentOccurrence] = []
    chunk_start = start
    while chunk_start < end:
        year, month = shift_month(chunk_start.year, chunk_start.month, 1)
        chunk_end = min(datetime(year, month, 1), end)
        # seed a day early so payments on the first day of the chunk are found
        seed = chunk_start - timedelta(days=1)
        days = (chunk_end - seed).days + 1
        occurrences.extend(
            occ
            for occ in upcoming_occurrences(config, seed, days)
            if chunk_start <= occ.date < chunk_end
        )
        chunk_start = chunk_end
    return occurrences


def scheduled_amount(source: IncomeSource, when: datetime) -> float:
    """Return the engine's amount for ``source`` on the calendar day of ``when``.

    ``0.0`` means the schedule has no payment on that day.
    """

    year, month = shift_month(when.year, when.month, -1)
    seed = datetime(year, month, 1)
    for occ in upcoming_occurrences(source.schedule_config(), seed, LOOKUP_DAYS):
        if occ.date.date() == when.date():
            return occ.amount
    return 0.0


def _source_query(session: Session, account_id: int | None):
    query = session.query(IncomeSource)
    if account_id is not None:
        query = query.filter(IncomeSource.account_id == account_id)
    return query


def _breakdown(
    session: Session,
    source: IncomeSource,
    start: datetime,
    end: datetime,
    now: datetime,
) -> SourceBreakdown:
    row = SourceBreakdown(
        id=source.id,
        name=source.name,
        category=source.category,
        frequency=source.frequency,
        base_amount=source.amount,
        is_active=bool(source.is_active),
    )
    records = (
        session.query(IncomeRecord)
        .filter(
            IncomeRecord.income_source_id == source.id,
            IncomeRecord.expected_date >= start,
            IncomeRecord.expected_date < end,
        )
        .all()
    )
    if records:
        fallback = per_occurrence_amount(source.schedule_config())
        for record in records:
            if record.status == CANCELLED:
                continue
            expected = scheduled_amount(source, record.expected_date) or fallback
            row.expected += expected
            if record.status == RECEIVED and record.actual_amount:
                row.received += record.actual_amount
            elif record.status in (PENDING, OVERDUE):
                row.pending += expected
                if record.status == OVERDUE or record.expected_date < now:
                    row.overdue += expected
    elif source.is_active:
        row.expected = sum(occ.amount for occ in expected_occurrences(source, start, end))
        row.pending = row.expected
    return row


def monthly_projections(
    session: Session, sources: list[IncomeSource], year: int
) -> list[MonthlyProjection]:
    """Return expected and received totals for each month of ``year``."""

    ids = [s.id for s in sources]
    rows: list[MonthlyProjection] = []
    for month in range(1, 13):
        start, end = period_bounds("monthly", year, month)
        expected = sum(
            occ.amount
            for source in sources
            if source.is_active
            for occ in expected_occurrences(source, start, end)
        )
        received = (
            session.query(func.coalesce(func.sum(IncomeRecord.actual_amount), 0.0))
            .filter(
                IncomeRecord.income_source_id.in_(ids),
                IncomeRecord.status == RECEIVED,
                IncomeRecord.actual_date >= start,
                IncomeRecord.actual_date < end,
            )
            .scalar()
        )
        rows.append(MonthlyProjection(month=month, expected=expected, received=float(received)))
    return rows


def recent_payments(
    session: Session, limit: int = RECENT_LIMIT, account_id: int | None = None
) -> list[IncomeRecord]:
    """Return the most recently received payments, newest first."""

    query = (
        session.query(IncomeRecord)
        .join(IncomeRecord.source)
        .filter(IncomeRecord.status == RECEIVED)
    )
    if account_id is not None:
        query = query.filter(IncomeSource.account_id == account_id)
    return query.order_by(IncomeRecord.actual_date.desc()).limit(limit).all()


def upcoming_feed(
    session: Session,
    now: datetime | None = None,
    days_ahead: int = UPCOMING_DAYS,
    limit: int = FEED_LIMIT,
    account_id: int | None = None,
) -> list[UpcomingPayment]:
    """Merge pending records with projected payments, soonest first.

    A projection is dropped when any record exists for the same source on the
    same calendar day. Pending records carry the engine's amount for their
    day and are left out when the schedule no longer pays on it.
    """

    now = now or datetime.now()
    records_query = (
        session.query(IncomeRecord)
        .join(IncomeRecord.source)
        .filter(IncomeRecord.expected_date >= now)
    )
    if account_id is not None:
        records_query = records_query.filter(IncomeSource.account_id == account_id)
    records = records_query.order_by(IncomeRecord.expected_date).all()
    recorded = {(r.income_source_id, r.expected_date.date()) for r in records}

    feed: list[UpcomingPayment] = []
    for record in records:
        if record.status != PENDING:
            continue
        amount = scheduled_amount(record.source, record.expected_date)
        if amount <= 0:
            logger.debug(
                "Pending record %s has no scheduled amount on %s",
                record.id,
                record.expected_date.date(),
            )
            continue
        feed.append(
            UpcomingPayment(
                source_id=record.source.id,
                source_name=record.source.name,
                category=record.source.category,
                expected_date=record.expected_date,
                expected_amount=amount,
                status=record.status,
                record_id=record.id,
            )
        )

    sources = (
        _source_query(session, account_id)
        .filter(IncomeSource.is_active.is_(True), IncomeSource.frequency != ONE_TIME)
        .order_by(IncomeSource.id)
        .all()
    )
    for source in sources:
        for occ in upcoming_occurrences(source.schedule_config(), now, days_ahead):
            if (source.id, occ.date.date()) in recorded:
                logger.debug("Skipping projection for %s on %s: already recorded", source.name, occ.date.date())
                continue
            feed.append(
                UpcomingPayment(
                    source_id=source.id,
                    source_name=source.name,
                    category=source.category,
                    expected_date=occ.date,
                    expected_amount=occ.amount,
                )
            )

    feed.sort(key=lambda p: (p.expected_date, p.source_id))
    return feed[:limit]


def income_statistics(
    session: Session,
    period: str = "monthly",
    year: int | None = None,
    month: int | None = None,
    now: datetime | None = None,
    account_id: int | None = None,
) -> IncomeStatistics:
    """Summarise expected, received, pending and overdue income for a period.

    Sources with records in the period are totalled from those records; the
    rest are projected with the schedule engine. Yearly summaries also carry
    a row per month.
    """

    now = now or datetime.now()
    year = year or now.year
    month = month or now.month
    start, end = period_bounds(period, year, month)
    period = period.strip().lower()

    sources = _source_query(session, account_id).order_by(IncomeSource.id).all()
    stats = IncomeStatistics(
        period=period,
        year=year,
        month=month if period == "monthly" else None,
    )
    for source in sources:
        row = _breakdown(session, source, start, end, now)
        stats.sources.append(row)
        stats.total_expected += row.expected
        stats.total_received += row.received
        stats.total_pending += row.pending
        stats.total_overdue += row.overdue

    if period == "yearly":
        stats.monthly_projections = monthly_projections(session, sources, year)
    stats.recent_payments = recent_payments(session, account_id=account_id)
    stats.upcoming_payments = upcoming_feed(session, now=now, account_id=account_id)
    return stats
