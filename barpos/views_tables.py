# barpos/views_tables.py
from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter
from sqlmodel import select

from . import orders as engine
from .deps import SessionDep, polled
from .models import DiningTable
from .tables import resolve_all
from .views_orders import order_payload

router = APIRouter(prefix="/api/tables", tags=["tables"])


@router.get("")
def list_tables(session: SessionDep, group: str = ""):
    """Stato derivato dagli ordini aperti, non dalla colonna in cache."""
    tables = session.exec(select(DiningTable).order_by(DiningTable.number)).all()
    views = resolve_all(session)
    rows = []
    for t in tables:
        v = views[t.id]
        rows.append({
            "id": t.id,
            "number": t.number,
            "capacity": t.capacity,
            "location": t.location.value,
            "status": v.status.value,
            "addable": v.addable,
            "locked": v.locked,
            "pending_order_id": v.pending_order_id,
        })
    if group == "location":
        grouped: Dict[str, List[dict]] = {}
        for r in rows:
            grouped.setdefault(r["location"], []).append(r)
        return polled(grouped)
    return polled(rows)


@router.get("/{table_id}/pending-order")
def pending_order(table_id: int, session: SessionDep):
    order = engine.select_table(session, table_id)
    if order is None:
        return polled({"ok": True, "mode": "new_order", "order": None})
    return polled({"ok": True, "mode": "add_items", "order": order_payload(session, order)})
