# barpos/models.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Index, text
from sqlmodel import SQLModel, Field


class TableLocation(str, Enum):
    main_hall = "main_hall"
    balcony = "balcony"
    terrace = "terrace"


class TableStatus(str, Enum):
    free = "free"
    occupied = "occupied"


class OrderStatus(str, Enum):
    pending = "pending"
    preparing = "preparing"
    ready = "ready"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.completed, OrderStatus.cancelled})


class BillingMode(str, Enum):
    anonymous = "anonymous"
    credit = "credit"
    manager = "manager"      # consumo gratuito del gestore


class PaymentMethod(str, Enum):
    cash = "cash"
    mobile_money = "mobile_money"


class ShiftType(str, Enum):
    morning = "morning"
    afternoon = "afternoon"


class SessionStatus(str, Enum):
    open = "open"
    closed = "closed"


class DiningTable(SQLModel, table=True):
    __tablename__ = "tables"
    id: Optional[int] = Field(default=None, primary_key=True)
    number: int = Field(index=True, unique=True)
    capacity: int = 4
    location: TableLocation = TableLocation.main_hall
    # proiezione in cache: riscritta nella stessa transazione di ogni mutazione ordine
    status: TableStatus = TableStatus.free


class Category(SQLModel, table=True):
    __tablename__ = "categories"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    color_hex: Optional[str] = Field(default="#0ea5e9", max_length=7)


class Product(SQLModel, table=True):
    __tablename__ = "products"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    price_cents: int = Field(default=0, ge=0)
    stock: Optional[int] = Field(default=0, ge=0)
    min_stock: Optional[int] = None
    max_stock: Optional[int] = None
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id")


class CreditClient(SQLModel, table=True):
    __tablename__ = "credit_clients"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    total_credit_cents: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class CreditPayment(SQLModel, table=True):
    __tablename__ = "credit_payments"
    id: Optional[int] = Field(default=None, primary_key=True)
    credit_client_id: int = Field(foreign_key="credit_clients.id", index=True)
    amount_cents: int
    method: PaymentMethod = PaymentMethod.cash
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False, index=True)
    recorded_by: Optional[str] = None


class Order(SQLModel, table=True):
    __tablename__ = "orders"
    __table_args__ = (
        # al massimo un ordine "pending" per tavolo
        Index(
            "uq_orders_table_pending",
            "table_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    table_id: int = Field(foreign_key="tables.id", index=True)
    status: OrderStatus = Field(default=OrderStatus.pending, index=True)

    billing_mode: BillingMode = BillingMode.anonymous
    credit_client_id: Optional[int] = Field(default=None, foreign_key="credit_clients.id")
    client_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.cash

    total_cents: int = Field(default=0, nullable=False)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False, index=True)
    completed_at: Optional[datetime] = None
    created_by: Optional[str] = None

    version: int = 1
    credit_posted: bool = False


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: int = Field(foreign_key="products.id")
    quantity: int = 1
    price_cents: int = 0     # snapshot del prezzo al momento del commit
    # ⚠️ NESSUNA relationship qui: si lavora per order_id


class BarSession(SQLModel, table=True):
    __tablename__ = "sessions"
    __table_args__ = (
        # una sola sessione aperta in tutto il sistema
        Index(
            "uq_sessions_single_open",
            "status",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    shift_type: ShiftType
    start_time: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.open
    opened_by: Optional[str] = None
    closed_by: Optional[str] = None
    stats_snapshot: Optional[dict] = Field(default=None, sa_type=JSON)
