from datetime import datetime

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker

from tests import helpers  # noqa: F401  # ensures project root on path
from income import database
from income.models import Account, IncomeSource
from income.schedule import upcoming_occurrences


def use_engine(monkeypatch, engine):
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(autoflush=False))


def test_init_db_creates_tables_and_default_account(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'fresh.db'}")
    use_engine(monkeypatch, engine)

    database.init_db()
    database.init_db()  # second run is a no-op

    assert {"accounts", "income_sources", "income_records"} <= set(
        inspect(engine).get_table_names()
    )
    with database.SessionLocal() as session:
        assert session.query(Account).filter_by(name="Default Checking").count() == 1
    engine.dispose()


def test_init_db_upgrades_legacy_income_sources(tmp_path, monkeypatch):
    # create legacy database lacking the manual-amount and account columns
    engine = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE income_sources ("
                "id INTEGER PRIMARY KEY, name VARCHAR NOT NULL, amount FLOAT NOT NULL, "
                "frequency VARCHAR NOT NULL, schedule_days JSON, "
                "schedule_weekday INTEGER, schedule_week VARCHAR)"
            )
        )
        conn.execute(
            text(
                "INSERT INTO income_sources (name, amount, frequency, schedule_days) "
                "VALUES ('Salary', 3000, 'MONTHLY', '[1, 15]')"
            )
        )

    use_engine(monkeypatch, engine)
    database.init_db()

    with engine.connect() as conn:
        cols = [row[1] for row in conn.execute(text("PRAGMA table_info(income_sources)"))]
        indexes = [row[1] for row in conn.execute(text("PRAGMA index_list(income_sources)"))]
    for name in ("schedule_time", "use_manual_amounts", "schedule_day_amounts", "account_id"):
        assert name in cols
    assert "ix_income_sources_account_active" in indexes

    with database.SessionLocal() as session:
        default = session.query(Account).filter_by(name="Default Checking").one()
        source = session.query(IncomeSource).one()
        assert source.account_id == default.id
        assert source.is_active
        payments = list(
            upcoming_occurrences(source.schedule_config(), datetime(2025, 1, 1), 20)
        )
        assert [p.amount for p in payments] == [1500]
    engine.dispose()
