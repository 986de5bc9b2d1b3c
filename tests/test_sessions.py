import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from barpos import credit
from barpos import orders as engine
from barpos import sessions as ledger
from barpos.errors import NotFoundError, SessionConflictError
from barpos.models import (
    BarSession, BillingMode, OrderStatus, PaymentMethod, SessionStatus, ShiftType,
)
from barpos.orders import Billing, CartLine


@pytest.fixture
def busy_shift(session, seeded, at_minute):
    """Sessione aperta a T0 con un ordine per ogni modalità di pagamento."""
    p1, p2, c = seeded["p1"], seeded["p2"], seeded["client"]

    # prima dell'apertura: fuori dalla finestra
    engine.start_order(session, 6, Billing(), [CartLine(p1.id, 9)], at_minute(-5))

    bar = ledger.open_session(session, ShiftType.morning, at_minute(0))

    orders = {
        "cash": engine.start_order(session, 1, Billing(), [CartLine(p1.id, 2)], at_minute(10)),
        "mobile": engine.start_order(
            session, 2, Billing(payment_method=PaymentMethod.mobile_money), [CartLine(p2.id, 1)], at_minute(11)
        ),
        "credit": engine.start_order(
            session, 3, Billing(mode=BillingMode.credit, credit_client_id=c.id), [CartLine(p1.id, 1)], at_minute(12)
        ),
        "manager": engine.start_order(
            session, 4, Billing(mode=BillingMode.manager, client_name="Gerente"), [CartLine(p2.id, 2)], at_minute(13)
        ),
        "cancelled": engine.start_order(session, 5, Billing(), [CartLine(p1.id, 1)], at_minute(14)),
    }
    engine.set_status(session, orders["cancelled"].id, OrderStatus.cancelled, at_minute(15))
    return bar, orders


def test_open_session_is_exclusive(session, seeded, at_minute):
    ledger.open_session(session, ShiftType.morning, at_minute(0))
    with pytest.raises(SessionConflictError):
        ledger.open_session(session, ShiftType.afternoon, at_minute(1))


def test_database_allows_single_open_session(session, seeded, at_minute):
    ledger.open_session(session, ShiftType.morning, at_minute(0))
    session.add(BarSession(shift_type=ShiftType.afternoon))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_close_without_open_session(session, seeded, at_minute):
    with pytest.raises(NotFoundError):
        ledger.close_session(session, at_minute(0))


def test_stats_bucket_by_payment_method(session, busy_shift, at_minute):
    bar, _ = busy_shift

    stats = ledger.compute_stats(session, bar, at_minute(30))

    assert stats.total_sales_cents == 1000 + 300 + 500 + 600
    assert stats.cash_in_register_cents == 1000
    assert stats.mobile_money_payments_cents == 300
    assert stats.credit_payments_cents == 500
    assert stats.manager_consumption_cents == 600
    assert stats.transaction_count == 4
    assert stats.active_credits_cents == 0
    # tavoli 1-4 pendenti + tavolo 6 aperto prima della sessione
    assert (stats.occupied_tables, stats.total_tables) == (5, 12)
    assert stats.total_sales_cents != stats.cash_in_register_cents


def test_cash_credit_repayment_lands_in_register(session, seeded, busy_shift, at_minute):
    bar, orders = busy_shift
    c = seeded["client"]
    for nxt in (OrderStatus.preparing, OrderStatus.ready, OrderStatus.completed):
        engine.set_status(session, orders["credit"].id, nxt, at_minute(20))
    credit.record_payment(session, c.id, 200, at_minute(21), method=PaymentMethod.cash)
    credit.record_payment(session, c.id, 100, at_minute(22), method=PaymentMethod.mobile_money)

    stats = ledger.compute_stats(session, bar, at_minute(30))

    assert stats.cash_in_register_cents == 1000 + 200
    assert stats.credit_payments_cents == 500
    assert stats.active_credits_cents == 200
    assert stats.total_sales_cents == 2400


def test_closed_session_stats_are_frozen(session, seeded, busy_shift, at_minute):
    bar, orders = busy_shift

    closed = ledger.close_session(session, at_minute(40))
    assert closed.status == SessionStatus.closed
    assert closed.end_time == at_minute(40).now()

    first = ledger.compute_stats(session, closed, at_minute(41))

    # attività successiva alla chiusura
    for nxt in (OrderStatus.preparing, OrderStatus.ready, OrderStatus.completed):
        engine.set_status(session, orders["credit"].id, nxt, at_minute(50))
    engine.set_status(session, orders["cash"].id, OrderStatus.cancelled, at_minute(51))
    engine.start_order(session, 7, Billing(), [CartLine(seeded["p1"].id, 3)], at_minute(52))

    second = ledger.compute_stats(session, closed, at_minute(90))
    assert first == second
    assert second.total_sales_cents == 2400
    assert second.active_credits_cents == 0


def test_credit_posted_once_across_stats_queries(session, seeded, busy_shift, at_minute):
    bar, orders = busy_shift
    for nxt in (OrderStatus.preparing, OrderStatus.ready, OrderStatus.completed):
        engine.set_status(session, orders["credit"].id, nxt, at_minute(20))

    for minute in (25, 26, 27):
        ledger.compute_stats(session, bar, at_minute(minute))
    ledger.close_session(session, at_minute(30))
    ledger.compute_stats(session, bar, at_minute(31))

    assert session.get(type(seeded["client"]), seeded["client"].id).total_credit_cents == 500


def test_new_session_after_close(session, seeded, at_minute):
    ledger.open_session(session, ShiftType.morning, at_minute(0))
    ledger.close_session(session, at_minute(300))
    bar = ledger.open_session(session, ShiftType.afternoon, at_minute(301))
    assert ledger.get_active_session(session).id == bar.id


def test_bucket_orders_skips_cancelled():
    from barpos.models import Order

    b = ledger.bucket_orders([
        Order(table_id=1, status=OrderStatus.cancelled, total_cents=999),
        Order(table_id=1, status=OrderStatus.completed, total_cents=250),
    ])
    assert b["total_sales_cents"] == 250
    assert b["cash_in_register_cents"] == 250
    assert b["transaction_count"] == 1


def test_handover_instant_counts_in_one_session_only(session, seeded, at_minute):
    p1, p2 = seeded["p1"], seeded["p2"]
    ledger.open_session(session, ShiftType.morning, at_minute(0))
    engine.start_order(session, 1, Billing(), [CartLine(p1.id, 1)], at_minute(10))
    # ordine registrato nello stesso istante del passaggio turno
    engine.start_order(session, 2, Billing(), [CartLine(p2.id, 1)], at_minute(60))

    morning = ledger.close_session(session, at_minute(60))
    afternoon = ledger.open_session(session, ShiftType.afternoon, at_minute(60))

    before = ledger.compute_stats(session, morning, at_minute(61))
    after = ledger.compute_stats(session, afternoon, at_minute(61))
    assert before.total_sales_cents == 500
    assert after.total_sales_cents == 300
    assert before.transaction_count + after.transaction_count == 2


def test_failed_close_leaves_session_open(session, seeded, at_minute, monkeypatch):
    bar = ledger.open_session(session, ShiftType.morning, at_minute(0))

    def _locked():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "commit", _locked)
    with pytest.raises(OperationalError):
        ledger.close_session(session, at_minute(30))
    monkeypatch.undo()

    assert not session.dirty
    active = ledger.get_active_session(session)
    assert active is not None and active.id == bar.id
    assert active.status == SessionStatus.open
    assert active.end_time is None
    assert active.stats_snapshot is None
