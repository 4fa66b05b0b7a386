from datetime import datetime

import pytest

from tests.helpers import get_temp_session, make_prompt
from income import cli
from income.models import CANCELLED, IncomeRecord, IncomeSource, RECEIVED
from income.services import create_source, record_payment


@pytest.fixture
def Session(monkeypatch):
    TestingSession, path = get_temp_session()
    monkeypatch.setattr(cli, "SessionLocal", TestingSession)
    monkeypatch.setattr(cli, "init_db", lambda: None)
    yield TestingSession
    TestingSession.kw["bind"].dispose()
    path.unlink()


def prompts(monkeypatch, select=(), text=(), confirm=()):
    monkeypatch.setattr(cli.questionary, "select", make_prompt(select))
    monkeypatch.setattr(cli.questionary, "text", make_prompt(text))
    monkeypatch.setattr(cli.questionary, "confirm", make_prompt(confirm))


def test_parse_days():
    assert cli.parse_days("15, 1,31, 15") == [1, 15, 31]
    for bad in ["", "0", "32", "1, x"]:
        with pytest.raises(ValueError):
            cli.parse_days(bad)


def test_add_monthly_source_with_manual_amounts(monkeypatch, Session):
    prompts(
        monkeypatch,
        select=["MONTHLY"],
        text=["Rent", "1000", "5, 20", "300", "700", "08:30"],
        confirm=[True],
    )
    cli.add_source()

    with Session() as session:
        source = session.query(IncomeSource).one()
        assert source.name == "Rent"
        assert source.schedule_days == [5, 20]
        assert source.use_manual_amounts
        assert source.schedule_day_amounts == {"5": 300.0, "20": 700.0}
        assert source.schedule_time == "08:30"


def test_add_weekly_source(monkeypatch, Session):
    prompts(monkeypatch, select=["WEEKLY", 0], text=["Market stall", "120", "07:00"])
    cli.add_source()

    with Session() as session:
        source = session.query(IncomeSource).one()
        assert source.frequency == "WEEKLY"
        assert source.schedule_weekday == 0


def test_add_source_rejects_bad_amount(monkeypatch, Session, capsys):
    prompts(monkeypatch, text=["Rent", "lots"])
    cli.add_source()

    assert "Invalid amount" in capsys.readouterr().out
    with Session() as session:
        assert session.query(IncomeSource).count() == 0


def test_add_source_reports_incomplete_schedule(monkeypatch, Session, capsys):
    prompts(monkeypatch, select=["MONTHLY"], text=["Rent", "1000", "40"])
    cli.add_source()

    assert "Invalid days" in capsys.readouterr().out
    with Session() as session:
        assert session.query(IncomeSource).count() == 0


def test_main_lists_sources_and_upcoming(monkeypatch, Session, capsys):
    with Session() as session:
        create_source(session, name="Tutoring", amount=45, frequency="WEEKLY", schedule_weekday=3)
    prompts(monkeypatch, select=["List income sources", "Upcoming payments", "Quit"])

    cli.main()

    out = capsys.readouterr().out
    assert "Tutoring: 45.00 weekly, next " in out
    assert "- Tutoring: 45.00" in out


def test_summary_output(monkeypatch, Session, capsys):
    with Session() as session:
        create_source(session, name="Salary", amount=3000, frequency="MONTHLY", schedule_days=[1])
    prompts(monkeypatch, select=["Monthly summary", "Yearly summary", "Quit"])

    cli.main()

    out = capsys.readouterr().out
    assert "Expected: 3000.00" in out
    assert "Expected: 36000.00" in out


def test_record_received_payment(monkeypatch, Session):
    with Session() as session:
        source_id = create_source(
            session, name="Salary", amount=3000, frequency="MONTHLY", schedule_days=[25]
        ).id
    prompts(monkeypatch, select=[source_id], text=["2950", "2025-01-25"])

    cli.record_received()

    with Session() as session:
        record = session.query(IncomeRecord).one()
        assert record.status == RECEIVED
        assert record.actual_amount == 2950
        assert record.actual_date == datetime(2025, 1, 25)


def test_record_received_rejects_bad_date(monkeypatch, Session, capsys):
    with Session() as session:
        source_id = create_source(
            session, name="Salary", amount=3000, frequency="MONTHLY", schedule_days=[25]
        ).id
    prompts(monkeypatch, select=[source_id], text=["2950", "25/01/2025"])

    cli.record_received()

    assert "Could not record payment" in capsys.readouterr().out
    with Session() as session:
        assert session.query(IncomeRecord).count() == 0


def test_record_received_cancelled_prompt(monkeypatch, Session, capsys):
    with Session() as session:
        create_source(session, name="Salary", amount=3000, frequency="MONTHLY", schedule_days=[25])
    prompts(monkeypatch, select=[None])

    cli.record_received()

    assert "Payment recorded" not in capsys.readouterr().out
    with Session() as session:
        assert session.query(IncomeRecord).count() == 0


def test_edit_source_replaces_schedule(monkeypatch, Session):
    with Session() as session:
        source_id = create_source(
            session, name="Salary", amount=3000, frequency="WEEKLY", schedule_weekday=5
        ).id
    prompts(
        monkeypatch,
        select=[source_id, "MONTHLY"],
        text=["Salary", "3200", "1, 15", "08:00"],
        confirm=[False],
    )

    cli.edit_source()

    with Session() as session:
        source = session.get(IncomeSource, source_id)
        assert source.amount == 3200
        assert source.frequency == "MONTHLY"
        assert source.schedule_days == [1, 15]
        assert source.schedule_weekday is None
        assert source.schedule_time == "08:00"


def test_toggle_and_delete_source(monkeypatch, Session, capsys):
    with Session() as session:
        source_id = create_source(
            session, name="Salary", amount=3000, frequency="MONTHLY", schedule_days=[25]
        ).id
    prompts(monkeypatch, select=[source_id, source_id, source_id], confirm=[True])

    cli.toggle_source()
    with Session() as session:
        assert not session.get(IncomeSource, source_id).is_active
    cli.toggle_source()
    with Session() as session:
        assert session.get(IncomeSource, source_id).is_active
    cli.remove_source()

    out = capsys.readouterr().out
    assert "Salary paused." in out
    assert "Salary resumed." in out
    with Session() as session:
        assert session.query(IncomeSource).count() == 0


def test_payment_history_and_cancel(monkeypatch, Session, capsys):
    with Session() as session:
        source = create_source(
            session, name="Salary", amount=3000, frequency="MONTHLY", schedule_days=[25]
        )
        record_payment(session, source, datetime(2025, 1, 25), 3000)
        pending = IncomeRecord(
            income_source_id=source.id, expected_date=datetime(2025, 2, 25, 9), status="PENDING"
        )
        session.add(pending)
        session.commit()
        pending_id = pending.id
    prompts(monkeypatch, select=["RECEIVED", pending_id, "CANCELLED"])

    cli.show_records()
    cli.cancel_payment()
    cli.show_records()

    out = capsys.readouterr().out
    assert "2025-01-25 RECEIVED  Salary: 3000.00" in out
    assert "2025-02-25 CANCELLED Salary: 0.00" in out
    with Session() as session:
        assert session.get(IncomeRecord, pending_id).status == CANCELLED
