# barpos/sessions.py
"""Sessioni di turno e riconciliazione cassa.

``total_sales`` e ``cash_in_register`` sono volutamente diversi: il primo somma
tutti gli ordini della sessione, il secondo solo quanto entra fisicamente in
cassa (ordini anonimi pagati in contanti + rientri crediti in contanti).
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func as sa_func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .context import RequestContext
from .credit import active_credits_cents
from .errors import NotFoundError, SessionConflictError
from .locks import session_lock
from .models import (
    BarSession, BillingMode, CreditPayment, Order, OrderStatus, PaymentMethod,
    SessionStatus, ShiftType,
)
from .money import fmt_cents
from .tables import occupancy, resolve_all

log = logging.getLogger("barpos.sessions")

# gli annullati non entrano in nessun totale
COUNTED_STATUSES = (
    OrderStatus.pending, OrderStatus.preparing, OrderStatus.ready, OrderStatus.completed,
)


@dataclass(frozen=True)
class SessionStats:
    total_sales_cents: int = 0
    cash_in_register_cents: int = 0
    credit_payments_cents: int = 0
    mobile_money_payments_cents: int = 0
    manager_consumption_cents: int = 0
    transaction_count: int = 0
    active_credits_cents: int = 0
    occupied_tables: int = 0
    total_tables: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionStats":
        return cls(**{k: int(data.get(k, 0) or 0) for k in cls.__dataclass_fields__})

    def as_money(self) -> dict:
        return {
            "total_sales": fmt_cents(self.total_sales_cents),
            "cash_in_register": fmt_cents(self.cash_in_register_cents),
            "credit_payments": fmt_cents(self.credit_payments_cents),
            "mobile_money_payments": fmt_cents(self.mobile_money_payments_cents),
            "manager_consumption": fmt_cents(self.manager_consumption_cents),
            "transaction_count": self.transaction_count,
            "active_credits": fmt_cents(self.active_credits_cents),
            "occupied_tables": self.occupied_tables,
            "total_tables": self.total_tables,
        }


def bucket_orders(orders: Iterable[Order], cash_repayments_cents: int = 0) -> dict:
    """Suddivide gli ordini per metodo di pagamento."""
    b = {
        "total_sales_cents": 0,
        "cash_in_register_cents": int(cash_repayments_cents),
        "credit_payments_cents": 0,
        "mobile_money_payments_cents": 0,
        "manager_consumption_cents": 0,
        "transaction_count": 0,
    }
    for o in orders:
        if o.status not in COUNTED_STATUSES:
            continue
        amount = int(o.total_cents or 0)
        b["total_sales_cents"] += amount
        b["transaction_count"] += 1
        if o.billing_mode == BillingMode.manager:
            b["manager_consumption_cents"] += amount
        elif o.billing_mode == BillingMode.credit:
            b["credit_payments_cents"] += amount
        elif o.payment_method == PaymentMethod.mobile_money:
            b["mobile_money_payments_cents"] += amount
        else:
            b["cash_in_register_cents"] += amount
    return b


def get_active_session(session: Session) -> Optional[BarSession]:
    return session.exec(
        select(BarSession).where(BarSession.status == SessionStatus.open)
    ).first()


def get_session(session: Session, session_id: int) -> BarSession:
    s = session.get(BarSession, session_id)
    if not s:
        raise NotFoundError(f"Sessione {session_id} non trovata")
    return s


def open_session(session: Session, shift_type: ShiftType, ctx: RequestContext) -> BarSession:
    with session_lock():
        current = get_active_session(session)
        if current:
            raise SessionConflictError(
                f"Sessione {current.id} già aperta",
                active_session_id=current.id,
            )
        s = BarSession(shift_type=shift_type, start_time=ctx.now(), opened_by=ctx.user)
        session.add(s)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise SessionConflictError("Un'altra sessione è stata aperta nel frattempo") from e
        session.refresh(s)
    log.info("sessione %s aperta (%s, user=%s)", s.id, shift_type.value, ctx.user)
    return s


def _live_stats(session: Session, start: datetime, end: Optional[datetime]) -> SessionStats:
    # finestra semiaperta [start, end): un istante di passaggio turno conta solo nella sessione nuova
    order_q = select(Order).where(Order.created_at >= start, Order.status.in_(COUNTED_STATUSES))
    repaid_q = select(sa_func.coalesce(sa_func.sum(CreditPayment.amount_cents), 0)).where(
        CreditPayment.method == PaymentMethod.cash,
        CreditPayment.created_at >= start,
    )
    if end is not None:
        order_q = order_q.where(Order.created_at < end)
        repaid_q = repaid_q.where(CreditPayment.created_at < end)
    orders = session.exec(order_q).all()
    repaid = session.exec(repaid_q).one()
    occupied, total = occupancy(resolve_all(session))
    return SessionStats(
        **bucket_orders(orders, int(repaid or 0)),
        active_credits_cents=active_credits_cents(session),
        occupied_tables=occupied,
        total_tables=total,
    )


def compute_stats(session: Session, bar_session: BarSession, ctx: RequestContext) -> SessionStats:
    """Sessione chiusa -> sempre lo snapshot salvato alla chiusura (query storica)."""
    if bar_session.status == SessionStatus.closed and bar_session.stats_snapshot:
        return SessionStats.from_dict(bar_session.stats_snapshot)
    return _live_stats(session, bar_session.start_time, bar_session.end_time)


def close_session(session: Session, ctx: RequestContext) -> BarSession:
    with session_lock():
        s = get_active_session(session)
        if not s:
            raise NotFoundError("Nessuna sessione aperta")
        now = ctx.now()
        stats = _live_stats(session, s.start_time, now)
        s.end_time = now
        s.status = SessionStatus.closed
        s.closed_by = ctx.user
        s.stats_snapshot = stats.to_dict()
        session.add(s)
        try:
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(s)
    log.info("sessione %s chiusa: vendite %s, cassa %s", s.id,
             fmt_cents(stats.total_sales_cents), fmt_cents(stats.cash_in_register_cents))
    return s
