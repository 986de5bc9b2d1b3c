# barpos/tables.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from .models import TERMINAL_STATUSES, DiningTable, Order, OrderStatus, TableStatus

log = logging.getLogger("barpos.tables")


@dataclass(frozen=True)
class TableView:
    status: TableStatus
    addable: bool
    pending_order_id: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self.status == TableStatus.occupied and not self.addable


FREE = TableView(status=TableStatus.free, addable=False)


def resolve(tables: Iterable[DiningTable], orders: Iterable[Order]) -> Dict[int, TableView]:
    """Proiezione pura: stato di ogni tavolo dagli ordini non terminali.

    - pending          -> occupied, addable (si possono aggiungere righe)
    - preparing/ready  -> occupied, bloccato
    - nessun ordine    -> free
    """
    pending: Dict[int, int] = {}
    busy: set[int] = set()
    for o in orders:
        if o.status in TERMINAL_STATUSES:
            continue
        busy.add(o.table_id)
        if o.status == OrderStatus.pending:
            pending[o.table_id] = o.id

    out: Dict[int, TableView] = {}
    for t in tables:
        if t.id in pending:
            out[t.id] = TableView(TableStatus.occupied, True, pending[t.id])
        elif t.id in busy:
            out[t.id] = TableView(TableStatus.occupied, False)
        else:
            out[t.id] = FREE
    return out


def open_orders(session: Session, table_id: Optional[int] = None) -> List[Order]:
    stmt = select(Order).where(Order.status.not_in(list(TERMINAL_STATUSES)))
    if table_id is not None:
        stmt = stmt.where(Order.table_id == table_id)
    return list(session.exec(stmt).all())


def resolve_all(session: Session) -> Dict[int, TableView]:
    tables = session.exec(select(DiningTable)).all()
    return resolve(tables, open_orders(session))


def resolve_one(session: Session, table: DiningTable) -> TableView:
    return resolve([table], open_orders(session, table.id))[table.id]


def sync_table_status(session: Session, table: DiningTable) -> TableView:
    """Riscrive la cache Table.status. Nessun commit: stessa transazione dell'ordine."""
    session.flush()
    view = resolve_one(session, table)
    if table.status != view.status:
        table.status = view.status
        session.add(table)
    return view


def reconcile_table_statuses(session: Session) -> int:
    """Ripara eventuali derive della cache; ritorna quanti tavoli sono stati corretti."""
    tables = session.exec(select(DiningTable)).all()
    views = resolve(tables, open_orders(session))
    fixed = 0
    for t in tables:
        if t.status != views[t.id].status:
            log.warning("tavolo %s: stato %s -> %s", t.number, t.status.value, views[t.id].status.value)
            t.status = views[t.id].status
            session.add(t)
            fixed += 1
    if fixed:
        session.commit()
    return fixed


def occupancy(views: Dict[int, TableView]) -> tuple[int, int]:
    occupied = sum(1 for v in views.values() if v.status == TableStatus.occupied)
    return occupied, len(views)
