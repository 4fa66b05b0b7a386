"""Command line interface for tracking income sources."""
from __future__ import annotations

from datetime import datetime

import questionary

from .database import SessionLocal, init_db
from .models import IncomeSource, OVERDUE, PENDING, STATUSES
from .reporting import income_statistics, upcoming_feed
from .schedule import (
    BIWEEKLY,
    FREQUENCIES,
    LAST_DAY,
    MONTHLY,
    ONE_TIME,
    WEEKDAY_NAMES,
    WEEKLY,
    WEEKS_OF_MONTH,
)
from .services import (
    cancel_record,
    create_source,
    delete_source,
    list_records,
    next_payment_date,
    record_payment,
    update_source,
)

MENU = [
    "Add income source",
    "Edit income source",
    "Pause or resume income source",
    "Delete income source",
    "List income sources",
    "Upcoming payments",
    "Monthly summary",
    "Yearly summary",
    "Record payment",
    "Payment history",
    "Cancel expected payment",
    "Quit",
]


def parse_days(text: str | None) -> list[int]:
    """Parse ``"1, 15, 31"`` into sorted day-of-month numbers."""

    days = set()
    for part in (text or "").split(","):
        part = part.strip()
        if not part:
            continue
        day = int(part)
        if not 1 <= day <= LAST_DAY:
            raise ValueError(f"Day {day} is not between 1 and {LAST_DAY}")
        days.add(day)
    if not days:
        raise ValueError("Enter at least one day")
    return sorted(days)


def ask_schedule(frequency: str) -> dict | None:
    """Prompt for the schedule fields ``frequency`` needs; ``None`` on bad input."""

    schedule: dict = {}
    if frequency in (WEEKLY, BIWEEKLY):
        schedule["schedule_weekday"] = questionary.select(
            "Payday:",
            choices=[
                questionary.Choice(name, value=idx) for idx, name in enumerate(WEEKDAY_NAMES)
            ],
        ).ask()
        if frequency == BIWEEKLY:
            schedule["schedule_week"] = questionary.select(
                "Week of the month:", choices=WEEKS_OF_MONTH
            ).ask()
    elif frequency != ONE_TIME:
        days_str = questionary.text("Days of month (comma separated, 31 = last day):").ask()
        try:
            days = parse_days(days_str)
        except ValueError as exc:
            print(f"Invalid days: {exc}")
            return None
        schedule["schedule_days"] = days
        if (
            frequency == MONTHLY
            and len(days) > 1
            and questionary.confirm("Enter a separate amount for each day?", default=False).ask()
        ):
            amounts = {}
            for day in days:
                amount_str = questionary.text(f"Amount on day {day}:").ask()
                try:
                    amounts[str(day)] = float(amount_str)
                except (TypeError, ValueError):
                    print("Invalid amount. Please enter a numeric value.")
                    return None
            schedule["use_manual_amounts"] = True
            schedule["schedule_day_amounts"] = amounts
    return schedule


def ask_source(existing: IncomeSource | None = None) -> dict | None:
    """Prompt for a source's name, amount and schedule; ``None`` on bad input."""

    name = questionary.text("Name:", default=existing.name if existing else "").ask()
    amount_str = questionary.text(
        "Amount:", default=f"{existing.amount:g}" if existing else ""
    ).ask()
    try:
        amount = float(amount_str)
    except (TypeError, ValueError):
        print("Invalid amount. Please enter a numeric value.")
        return None
    frequency = questionary.select(
        "Frequency:",
        choices=FREQUENCIES,
        default=existing.frequency if existing else None,
    ).ask()
    schedule = ask_schedule(frequency)
    if schedule is None:
        return None
    if frequency != ONE_TIME:
        current = existing.schedule_time if existing and existing.schedule_time else "09:00"
        schedule["schedule_time"] = questionary.text("Time (HH:MM):", default=current).ask()
    return dict(name=name, amount=amount, frequency=frequency, **schedule)


def choose_source(session, message: str = "Income source:") -> IncomeSource | None:
    sources = session.query(IncomeSource).order_by(IncomeSource.name).all()
    if not sources:
        print("No income sources recorded.\n")
        return None
    source_id = questionary.select(
        message,
        choices=[questionary.Choice(s.name, value=s.id) for s in sources],
    ).ask()
    if source_id is None:
        return None
    return session.get(IncomeSource, source_id)


def add_source() -> None:
    fields = ask_source()
    if fields is None:
        return

    with SessionLocal() as session:
        try:
            create_source(session, **fields)
        except ValueError as exc:
            print(f"Could not save income source: {exc}")
            return
    print("Income source saved.\n")


def edit_source() -> None:
    with SessionLocal() as session:
        source = choose_source(session)
        if source is None:
            return
        fields = ask_source(source)
        if fields is None:
            return
        # a new schedule replaces the old one entirely
        for name in ("schedule_days", "schedule_weekday", "schedule_week"):
            fields.setdefault(name, None)
        fields.setdefault("use_manual_amounts", False)
        fields.setdefault("schedule_day_amounts", None)
        try:
            update_source(session, source.id, **fields)
        except ValueError as exc:
            print(f"Could not update income source: {exc}")
            return
    print("Income source updated.\n")


def toggle_source() -> None:
    with SessionLocal() as session:
        source = choose_source(session)
        if source is None:
            return
        try:
            source = update_source(session, source.id, is_active=not source.is_active)
        except ValueError as exc:
            print(f"Could not update income source: {exc}")
            return
        state = "resumed" if source.is_active else "paused"
        print(f"{source.name} {state}.\n")


def remove_source() -> None:
    with SessionLocal() as session:
        source = choose_source(session)
        if source is None:
            return
        if not questionary.confirm(
            f"Delete {source.name} and all of its payments?", default=False
        ).ask():
            return
        delete_source(session, source.id)
    print("Income source deleted.\n")


def list_sources() -> None:
    with SessionLocal() as session:
        sources = session.query(IncomeSource).order_by(IncomeSource.name).all()
        if not sources:
            print("No income sources recorded.\n")
            return
        now = datetime.now()
        for source in sources:
            nxt = next_payment_date(source, now)
            when = f"{nxt:%Y-%m-%d %H:%M}" if nxt else "-"
            state = "" if source.is_active else " (inactive)"
            print(
                f"{source.name}{state}: {source.amount:.2f} {source.frequency.lower()}, next {when}"
            )
        print()


def show_upcoming() -> None:
    with SessionLocal() as session:
        feed = upcoming_feed(session)
    if not feed:
        print("No upcoming payments.\n")
        return
    for payment in feed:
        marker = "*" if payment.is_existing_record else " "
        print(
            f"{marker} {payment.expected_date:%Y-%m-%d %H:%M} - "
            f"{payment.source_name}: {payment.expected_amount:.2f}"
        )
    print()


def show_summary(period: str) -> None:
    with SessionLocal() as session:
        stats = income_statistics(session, period=period)
    label = f"{stats.year}" if period == "yearly" else f"{stats.year}-{stats.month:02d}"
    print(f"Income summary for {label}")
    print(f"  Expected: {stats.total_expected:.2f}")
    print(f"  Received: {stats.total_received:.2f} ({stats.receipt_rate:.0f}%)")
    print(f"  Pending:  {stats.total_pending:.2f}")
    print(f"  Overdue:  {stats.total_overdue:.2f}")
    for row in stats.sources:
        print(f"    {row.name}: expected {row.expected:.2f}, received {row.received:.2f}")
    for proj in stats.monthly_projections:
        print(f"    {proj.month:02d}: expected {proj.expected:.2f}, received {proj.received:.2f}")
    print()


def record_received() -> None:
    with SessionLocal() as session:
        source = choose_source(session)
        if source is None:
            return
        amount_str = questionary.text("Amount received:").ask()
        date_str = questionary.text(
            "Date received (YYYY-MM-DD):", default=f"{datetime.now():%Y-%m-%d}"
        ).ask()
        try:
            when = datetime.strptime(date_str, "%Y-%m-%d")
            record_payment(session, source, when, amount_str)
        except (TypeError, ValueError) as exc:
            print(f"Could not record payment: {exc}")
            return
    print("Payment recorded.\n")


def show_records() -> None:
    status = questionary.select("Status:", choices=["ALL"] + STATUSES).ask()
    if status is None:
        return
    with SessionLocal() as session:
        records = list_records(session, status=None if status == "ALL" else status)
        if not records:
            print("No payments recorded.\n")
            return
        for record in records:
            amount = record.actual_amount if record.actual_amount is not None else 0.0
            print(
                f"{record.expected_date:%Y-%m-%d} {record.status:<9} "
                f"{record.source.name}: {amount:.2f}"
            )
        print()


def cancel_payment() -> None:
    with SessionLocal() as session:
        records = list_records(session, status=PENDING) + list_records(session, status=OVERDUE)
        if not records:
            print("No outstanding payments.\n")
            return
        record_id = questionary.select(
            "Payment to cancel:",
            choices=[
                questionary.Choice(
                    f"{r.expected_date:%Y-%m-%d} {r.source.name}", value=r.id
                )
                for r in sorted(records, key=lambda r: r.expected_date)
            ],
        ).ask()
        if record_id is None:
            return
        try:
            cancel_record(session, record_id)
        except ValueError as exc:
            print(f"Could not cancel payment: {exc}")
            return
    print("Payment cancelled.\n")


def main() -> None:
    """Entry point for the income CLI."""
    init_db()
    while True:
        choice = questionary.select("Choose an option:", choices=MENU).ask()

        if choice == "Add income source":
            add_source()
        elif choice == "Edit income source":
            edit_source()
        elif choice == "Pause or resume income source":
            toggle_source()
        elif choice == "Delete income source":
            remove_source()
        elif choice == "List income sources":
            list_sources()
        elif choice == "Upcoming payments":
            show_upcoming()
        elif choice == "Monthly summary":
            show_summary("monthly")
        elif choice == "Yearly summary":
            show_summary("yearly")
        elif choice == "Record payment":
            record_received()
        elif choice == "Payment history":
            show_records()
        elif choice == "Cancel expected payment":
            cancel_payment()
        else:
            break


if __name__ == "__main__":
    main()
