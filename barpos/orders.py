# barpos/orders.py
"""Motore ordini: apertura su tavolo, merge righe, transizioni di stato.

Regola di merge (da non "semplificare"): per ogni riga del carrello
- prodotto NON presente nell'ordine  -> si aggiunge una riga nuova;
- prodotto GIÀ presente              -> la quantità del carrello SOSTITUISCE
  quella registrata (valore assoluto, mai un delta); <= 0 rimuove la riga.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import credit
from .catalog import decrement_stock, products_by_id, require_orderable
from .context import RequestContext
from .errors import (
    ConflictError, InvalidTransitionError, NoOpError, NotFoundError,
    TableNotFreeError, ValidationError,
)
from .locks import table_lock
from .models import (
    BillingMode, CreditClient, DiningTable, Order, OrderItem, OrderStatus,
    PaymentMethod, TableStatus,
)
from .money import fmt_cents
from .tables import resolve_one, sync_table_status

log = logging.getLogger("barpos.orders")

TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.pending: frozenset({OrderStatus.preparing, OrderStatus.cancelled}),
    OrderStatus.preparing: frozenset({OrderStatus.ready, OrderStatus.cancelled}),
    OrderStatus.ready: frozenset({OrderStatus.completed, OrderStatus.cancelled}),
}


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class Billing:
    mode: BillingMode = BillingMode.anonymous
    credit_client_id: Optional[int] = None
    client_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.cash


# --- util -------------------------------------------------------------------

@contextmanager
def _atomic(session: Session) -> Iterator[None]:
    # o tutto (ordine + righe + tavolo + credito + magazzino) o niente;
    # i vincoli unici possono scattare sia al flush sia al commit
    try:
        yield
    except IntegrityError as e:
        session.rollback()
        log.warning("scrittura rifiutata dal DB: %s", e.orig)
        raise ConflictError("Stato cambiato nel frattempo, ricaricare e riprovare") from e
    except Exception:
        session.rollback()
        raise


def _check_cart(cart: Sequence[CartLine], require_positive: bool) -> None:
    seen: set[int] = set()
    for line in cart:
        if line.product_id in seen:
            raise ValidationError(f"Prodotto {line.product_id} ripetuto nel carrello", product_id=line.product_id)
        seen.add(line.product_id)
        if require_positive and line.quantity <= 0:
            raise ValidationError(f"Quantità non valida per il prodotto {line.product_id}", product_id=line.product_id)


def normalize_billing(session: Session, billing: Billing) -> Billing:
    """Un solo campo significativo per modalità: credit -> id cliente, altrimenti nome."""
    name = (billing.client_name or "").strip() or None
    if billing.mode == BillingMode.credit:
        if billing.credit_client_id is None:
            raise ValidationError("Modalità credito senza cliente")
        if not session.get(CreditClient, billing.credit_client_id):
            raise ValidationError(f"Cliente credito {billing.credit_client_id} inesistente")
        if billing.payment_method != PaymentMethod.cash:
            raise ValidationError("Un ordine a credito non ha metodo di pagamento")
        return Billing(BillingMode.credit, billing.credit_client_id, None, PaymentMethod.cash)

    if billing.credit_client_id is not None:
        raise ValidationError(f"Cliente credito non ammesso in modalità {billing.mode.value}")
    if billing.mode == BillingMode.manager and billing.payment_method != PaymentMethod.cash:
        raise ValidationError("Il consumo del gestore non ha metodo di pagamento")
    return Billing(billing.mode, None, name, billing.payment_method)


def get_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Ordine {order_id} non trovato")
    return order


def order_items(session: Session, order_id: int) -> List[OrderItem]:
    return list(session.exec(
        select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    ).all())


def items_total_cents(items: Sequence[OrderItem]) -> int:
    return sum(int(it.price_cents) * int(it.quantity) for it in items)


def list_orders(
    session: Session,
    status: Optional[OrderStatus] = None,
    table_id: Optional[int] = None,
    limit: int = 200,
) -> List[Order]:
    stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    if table_id is not None:
        stmt = stmt.where(Order.table_id == table_id)
    return list(session.exec(stmt).all())


def _get_table(session: Session, table_id: int) -> DiningTable:
    table = session.get(DiningTable, table_id)
    if not table:
        raise NotFoundError(f"Tavolo {table_id} non trovato")
    return table


# --- operazioni ---------------------------------------------------------------

def select_table(session: Session, table_id: int) -> Optional[Order]:
    """Ordine pending del tavolo, se c'è: il chiamante passa in modalità "aggiungi"."""
    table = _get_table(session, table_id)
    view = resolve_one(session, table)
    if view.pending_order_id is None:
        return None
    return session.get(Order, view.pending_order_id)


def start_order(
    session: Session,
    table_id: int,
    billing: Billing,
    cart: Sequence[CartLine],
    ctx: RequestContext,
    notes: Optional[str] = None,
) -> Order:
    if not cart:
        raise ValidationError("Carrello vuoto")
    _check_cart(cart, require_positive=True)
    billing = normalize_billing(session, billing)

    with table_lock(table_id), _atomic(session):
        table = _get_table(session, table_id)
        view = resolve_one(session, table)
        if view.status != TableStatus.free:
            raise TableNotFreeError(
                f"Tavolo {table.number} occupato",
                pending_order_id=view.pending_order_id,
            )

        prods = products_by_id(session, [l.product_id for l in cart])
        snapshot = [(require_orderable(prods, l.product_id), l.quantity) for l in cart]

        order = Order(
            table_id=table.id,
            billing_mode=billing.mode,
            credit_client_id=billing.credit_client_id,
            client_name=billing.client_name,
            payment_method=billing.payment_method,
            notes=(notes or "").strip() or None,
            created_at=ctx.now(),
            created_by=ctx.user,
        )
        session.add(order)
        session.flush()  # ottieni order.id

        items = [
            OrderItem(order_id=order.id, product_id=p.id, quantity=qty, price_cents=int(p.price_cents))
            for p, qty in snapshot
        ]
        session.add_all(items)
        order.total_cents = items_total_cents(items)
        session.add(order)

        sync_table_status(session, table)
        session.commit()

    log.info("ordine %s aperto su tavolo %s (%s righe, totale %s)",
             order.id, table.number, len(items), fmt_cents(order.total_cents))
    return order


def merge_items(
    session: Session,
    order_id: int,
    cart: Sequence[CartLine],
    ctx: RequestContext,
    expected_version: Optional[int] = None,
) -> Order:
    order = get_order(session, order_id)
    _check_cart(cart, require_positive=False)

    with table_lock(order.table_id), _atomic(session):
        session.refresh(order)
        if order.status != OrderStatus.pending:
            raise InvalidTransitionError(
                f"Ordine {order.id} in stato {order.status.value}: non si possono aggiungere righe"
            )
        if expected_version is not None and expected_version != order.version:
            raise ConflictError(
                f"Ordine {order.id} modificato nel frattempo",
                current_version=order.version,
            )

        items = order_items(session, order.id)
        by_product = {it.product_id: it for it in items}
        prods = products_by_id(
            session, [l.product_id for l in cart if l.product_id not in by_product and l.quantity > 0]
        )

        adds: List[OrderItem] = []
        updates: List[tuple[OrderItem, int]] = []
        removals: List[OrderItem] = []
        for line in cart:
            existing = by_product.get(line.product_id)
            if existing is None:
                # riga nuova: si aggiunge con la quantità del carrello
                if line.quantity <= 0:
                    continue
                p = require_orderable(prods, line.product_id)
                adds.append(OrderItem(
                    order_id=order.id, product_id=p.id,
                    quantity=line.quantity, price_cents=int(p.price_cents),
                ))
            elif line.quantity <= 0:
                removals.append(existing)
            elif line.quantity != existing.quantity:
                # riga esistente: quantità assoluta, il prezzo resta quello registrato
                updates.append((existing, line.quantity))

        if not (adds or updates or removals):
            raise NoOpError("Nessun articolo nuovo da aggiungere", order_id=order.id)

        for it, qty in updates:
            it.quantity = qty
            session.add(it)
        for it in removals:
            session.delete(it)
        session.add_all(adds)
        session.flush()

        order.total_cents = items_total_cents(order_items(session, order.id))
        order.version += 1
        session.add(order)
        session.commit()

    log.info("ordine %s: +%s righe, %s modificate, %s rimosse (totale %s, user=%s)",
             order.id, len(adds), len(updates), len(removals), fmt_cents(order.total_cents), ctx.user)
    return order


def set_status(
    session: Session,
    order_id: int,
    next_status: OrderStatus,
    ctx: RequestContext,
    payment_method: Optional[PaymentMethod] = None,
) -> Order:
    order = get_order(session, order_id)

    with table_lock(order.table_id), _atomic(session):
        session.refresh(order)
        current = order.status
        if next_status not in TRANSITIONS.get(current, frozenset()):
            raise InvalidTransitionError(
                f"Transizione {current.value} -> {next_status.value} non ammessa",
                status=current.value,
            )
        if payment_method is not None:
            if next_status != OrderStatus.completed:
                raise ValidationError("Il metodo di pagamento si indica solo alla chiusura")
            if order.billing_mode != BillingMode.anonymous:
                raise ValidationError(f"Metodo di pagamento non ammesso per {order.billing_mode.value}")

        order.status = next_status
        order.version += 1
        if next_status == OrderStatus.completed:
            order.completed_at = ctx.now()
            if payment_method is not None:
                order.payment_method = payment_method
            items = order_items(session, order.id)
            qty_by_product: Dict[int, int] = {}
            for it in items:
                qty_by_product[it.product_id] = qty_by_product.get(it.product_id, 0) + it.quantity
            decrement_stock(products_by_id(session, qty_by_product), qty_by_product)
            if order.billing_mode == BillingMode.credit and not order.credit_posted:
                credit.charge(session, order.credit_client_id, order.total_cents)
                order.credit_posted = True
        session.add(order)

        sync_table_status(session, _get_table(session, order.table_id))
        session.commit()

    log.info("ordine %s: %s -> %s (user=%s)", order.id, current.value, next_status.value, ctx.user)
    return order
