from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship

from .database import Base
from .schedule import MONTHLY, ScheduleConfig

PENDING = "PENDING"
RECEIVED = "RECEIVED"
OVERDUE = "OVERDUE"
CANCELLED = "CANCELLED"

STATUSES = [PENDING, RECEIVED, OVERDUE, CANCELLED]


class Account(Base):
    """Bank or cash account that income is paid into."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False, default="checking")
    created_at = Column(DateTime, default=datetime.utcnow)


class IncomeSource(Base):
    """A salary, rent, dividend or other source of income and its schedule."""

    __tablename__ = "income_sources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False, default="OTHER")
    amount = Column(Float, nullable=False)
    frequency = Column(String, nullable=False, default=MONTHLY)
    schedule_days = Column(JSON)
    schedule_weekday = Column(Integer)
    schedule_week = Column(String)
    schedule_time = Column(String(5))
    use_manual_amounts = Column(Boolean, default=False)
    # JSON object keys come back from the database as strings
    schedule_day_amounts = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    account_id = Column(
        Integer,
        ForeignKey("accounts.id"),
        index=True,
        nullable=False,
        default=1,
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    records = relationship(
        "IncomeRecord",
        back_populates="source",
        cascade="all, delete-orphan",
        order_by="IncomeRecord.expected_date",
    )

    __table_args__ = (
        Index("ix_income_sources_account_active", "account_id", "is_active"),
    )

    def schedule_config(self) -> ScheduleConfig:
        """Return the schedule engine's view of this source."""

        return ScheduleConfig(
            frequency=self.frequency,
            amount=self.amount,
            schedule_days=self.schedule_days or (),
            schedule_weekday=self.schedule_weekday,
            schedule_week=self.schedule_week,
            schedule_time=self.schedule_time,
            use_manual_amounts=bool(self.use_manual_amounts),
            schedule_day_amounts=self.schedule_day_amounts or {},
        )


class IncomeRecord(Base):
    """A persisted expected or received payment for an income source."""

    __tablename__ = "income_records"

    id = Column(Integer, primary_key=True, index=True)
    income_source_id = Column(
        Integer, ForeignKey("income_sources.id"), nullable=False, index=True
    )
    expected_date = Column(DateTime, nullable=False)
    actual_date = Column(DateTime)
    actual_amount = Column(Float)
    status = Column(String, nullable=False, default=PENDING)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    source = relationship("IncomeSource", back_populates="records")

    __table_args__ = (
        Index("ix_income_records_source_expected", "income_source_id", "expected_date"),
    )
