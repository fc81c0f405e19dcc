# shopbook/models.py

import uuid
from datetime import date as Date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date as DateType, DateTime, Index, UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import Column, Field, SQLModel

from .core import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


# Instants are naive UTC (see core.utcnow); the column type says so explicitly
def utc_column(nullable: bool = True) -> Column:
    return Column(DateTime(timezone=False), nullable=nullable)


class Shop(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    timezone: str = "America/New_York"
    # {"monday": {"open": "09:00", "close": "18:00", "closed": false}, ...}
    business_hours: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))


class Service(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    shop_id: str = Field(foreign_key="shop.id", index=True)
    name: str
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    duration: int  # minutes
    is_active: bool = True


class Staff(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    shop_id: str = Field(foreign_key="shop.id", index=True)
    user_id: Optional[str] = None
    name: str
    role: str = "barber"  # owner, manager or barber
    is_active: bool = True


class Client(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    shop_id: str = Field(foreign_key="shop.id", index=True)
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    total_visits: int = 0
    total_spent: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    last_visit: Optional[datetime] = Field(default=None, sa_column=utc_column())
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))


class Appointment(SQLModel, table=True):
    __table_args__ = (
        Index("ix_appointment_shop_start", "shop_id", "start_time"),
        Index("ix_appointment_staff_start", "staff_id", "start_time"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    shop_id: str = Field(foreign_key="shop.id")
    service_id: str = Field(foreign_key="service.id")
    staff_id: Optional[str] = Field(default=None, foreign_key="staff.id")  # None = any available
    client_id: Optional[str] = Field(default=None, foreign_key="client.id")  # None = guest booking

    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None

    # naive UTC instants
    start_time: datetime = Field(sa_column=utc_column(nullable=False))
    end_time: datetime = Field(sa_column=utc_column(nullable=False))
    duration: int  # minutes

    price: Decimal = Field(max_digits=10, decimal_places=2)
    status: str = "scheduled"
    payment_status: str = "pending"
    notes: Optional[str] = None

    reminder_24h_sent_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    reminder_2h_sent_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    reminder_24h_claimed_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    reminder_2h_claimed_at: Optional[datetime] = Field(default=None, sa_column=utc_column())

    deleted_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))


class DailyAnalytics(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("shop_id", "date", name="uq_analytics_shop_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    shop_id: str = Field(foreign_key="shop.id")
    date: Date = Field(sa_column=Column(DateType, nullable=False))
    total_revenue: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    completed_appointments: int = 0
    total_appointments: int = 0
