# barpos/views_orders.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from . import orders as engine
from .deps import CtxDep, SessionDep, polled
from .models import BillingMode, Order, OrderStatus, PaymentMethod, Product
from .money import fmt_cents, to_cents
from .ws import notify

log = logging.getLogger("barpos.api")

router = APIRouter(prefix="/api/orders", tags=["orders"])


class CartLineIn(BaseModel):
    product_id: int
    quantity: int
    # il prezzo inviato dal client è solo indicativo: fa fede il listino
    price: Optional[Any] = None


class BillingIn(BaseModel):
    mode: BillingMode = BillingMode.anonymous
    credit_client_id: Optional[int] = None
    client_name: Optional[str] = None


class OrderCreateIn(BaseModel):
    table_id: int
    billing: BillingIn = Field(default_factory=BillingIn)
    items: List[CartLineIn] = Field(default_factory=list)
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.cash
    total_amount: Optional[Any] = None


class MergeIn(BaseModel):
    items: List[CartLineIn] = Field(default_factory=list)
    expected_version: Optional[int] = None


class StatusIn(BaseModel):
    status: OrderStatus
    payment_method: Optional[PaymentMethod] = None


def _cart(lines: List[CartLineIn]) -> List[engine.CartLine]:
    return [engine.CartLine(product_id=l.product_id, quantity=l.quantity) for l in lines]


def order_payload(session: Session, order: Order) -> Dict[str, Any]:
    items = engine.order_items(session, order.id)
    pids = [it.product_id for it in items]
    names = {
        p.id: p.name
        for p in session.exec(select(Product).where(Product.id.in_(pids))).all()
    } if pids else {}
    return {
        "id": order.id,
        "table_id": order.table_id,
        "status": order.status.value,
        "billing": {
            "mode": order.billing_mode.value,
            "credit_client_id": order.credit_client_id,
            "client_name": order.client_name,
            "free_consumption": order.billing_mode == BillingMode.manager,
        },
        "payment_method": order.payment_method.value,
        "items": [
            {
                "id": it.id,
                "product_id": it.product_id,
                "name": names.get(it.product_id, f"Prod {it.product_id}"),
                "quantity": it.quantity,
                "price": fmt_cents(it.price_cents),
                "price_cents": it.price_cents,
            }
            for it in items
        ],
        "total_cents": order.total_cents,
        "total_amount": fmt_cents(order.total_cents),
        "notes": order.notes,
        "created_at": order.created_at,
        "completed_at": order.completed_at,
        "created_by": order.created_by,
        "version": order.version,
    }


def _changed(order: Order) -> tuple[dict, dict]:
    return (
        {"type": "orders_changed", "order_id": order.id, "table_id": order.table_id},
        {"type": "session_stats_invalidated"},
    )


@router.get("")
def list_orders(
    session: SessionDep,
    status: Optional[OrderStatus] = None,
    table_id: Optional[int] = None,
    limit: int = 200,
):
    rows = engine.list_orders(session, status=status, table_id=table_id, limit=max(1, min(limit, 1000)))
    return polled([order_payload(session, o) for o in rows])


@router.get("/{order_id}")
def get_order(order_id: int, session: SessionDep):
    return polled(order_payload(session, engine.get_order(session, order_id)))


@router.post("", status_code=201)
async def create_order(body: OrderCreateIn, session: SessionDep, ctx: CtxDep):
    billing = engine.Billing(
        mode=body.billing.mode,
        credit_client_id=body.billing.credit_client_id,
        client_name=body.billing.client_name,
        payment_method=body.payment_method,
    )
    order = engine.start_order(session, body.table_id, billing, _cart(body.items), ctx, notes=body.notes)

    claimed = to_cents(body.total_amount)
    if claimed is not None and claimed != order.total_cents:
        log.warning("ordine %s: totale client %s != listino %s",
                    order.id, fmt_cents(claimed), fmt_cents(order.total_cents))

    await notify(*_changed(order))
    return {"ok": True, "order": order_payload(session, order)}


@router.post("/{order_id}/items")
async def merge_items(order_id: int, body: MergeIn, session: SessionDep, ctx: CtxDep):
    order = engine.merge_items(
        session, order_id, _cart(body.items), ctx, expected_version=body.expected_version
    )
    await notify(*_changed(order))
    return {"ok": True, "order": order_payload(session, order)}


@router.put("/{order_id}/status")
async def set_status(order_id: int, body: StatusIn, session: SessionDep, ctx: CtxDep):
    order = engine.set_status(session, order_id, body.status, ctx, payment_method=body.payment_method)
    payloads = list(_changed(order))
    if order.credit_posted and order.status == OrderStatus.completed:
        payloads.append({"type": "credit_changed", "credit_client_id": order.credit_client_id})
    await notify(*payloads)
    return {"ok": True, "order": order_payload(session, order)}
