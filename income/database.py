import os
from pathlib import Path
from sqlalchemy import create_engine, text, inspect
from sqlalchemy.orm import sessionmaker, declarative_base

# Determine database path; allow override with environment variable for testing
DB_FILE = os.getenv("INCOME_DB", None)
if DB_FILE is None:
    DB_FILE = Path(__file__).resolve().parent / "income.db"
else:
    DB_FILE = Path(DB_FILE)

engine = create_engine(f"sqlite:///{DB_FILE}", echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

Base = declarative_base()

# Columns added to income_sources after the first release
SOURCE_UPGRADES = [
    ("category", "VARCHAR DEFAULT 'OTHER'"),
    ("schedule_time", "VARCHAR(5)"),
    ("use_manual_amounts", "BOOLEAN DEFAULT 0"),
    ("schedule_day_amounts", "JSON"),
    ("is_active", "BOOLEAN DEFAULT 1"),
    ("created_at", "DATETIME"),
    ("updated_at", "DATETIME"),
]


def ensure_default_account(session) -> "Account":
    """Ensure a 'Default Checking' account exists and return it."""
    from .models import Account

    acc = session.query(Account).filter_by(name="Default Checking").first()
    if acc:
        return acc

    acc = Account(name="Default Checking", type="checking")
    session.add(acc)
    session.commit()
    return acc


def init_db() -> None:
    """Create database tables if they do not exist and upgrade old ones."""
    from . import models  # noqa: F401
    insp = inspect(engine)
    required = {"accounts", "income_sources", "income_records"}
    existing = set(insp.get_table_names())
    if not required.issubset(existing):
        Base.metadata.create_all(engine)

    SessionLocal.configure(bind=engine)
    with SessionLocal() as session:
        default_id = ensure_default_account(session).id

    with engine.begin() as conn:
        cols = [r[1] for r in conn.execute(text("PRAGMA table_info(income_sources)"))]
        for name, ddl in SOURCE_UPGRADES:
            if name not in cols:
                conn.execute(text(f"ALTER TABLE income_sources ADD COLUMN {name} {ddl}"))

        if "account_id" not in cols:
            conn.execute(
                text(
                    f"ALTER TABLE income_sources ADD COLUMN account_id INTEGER DEFAULT {default_id}"
                )
            )
        conn.execute(
            text(
                f"UPDATE income_sources SET account_id = {default_id} WHERE account_id IS NULL"
            )
        )
        conn.execute(
            text(
                "CREATE INDEX IF NOT EXISTS ix_income_sources_account_active "
                "ON income_sources(account_id, is_active)"
            )
        )
        conn.execute(
            text(
                "CREATE INDEX IF NOT EXISTS ix_income_records_source_expected "
                "ON income_records(income_source_id, expected_date)"
            )
        )
