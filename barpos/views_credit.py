# barpos/views_credit.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from . import credit
from .deps import CtxDep, SessionDep, polled
from .errors import ValidationError
from .models import CreditClient, PaymentMethod
from .money import fmt_cents, to_cents
from .ws import notify

router = APIRouter(prefix="/api/credit-clients", tags=["credit"])


class ClientIn(BaseModel):
    name: str


class PaymentIn(BaseModel):
    amount: Any
    method: PaymentMethod = PaymentMethod.cash


def client_payload(c: CreditClient) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "total_credit": fmt_cents(c.total_credit_cents),
        "total_credit_cents": c.total_credit_cents,
    }


@router.get("")
def list_clients(session: SessionDep):
    return polled([client_payload(c) for c in credit.list_clients(session)])


@router.post("", status_code=201)
async def create_client(body: ClientIn, session: SessionDep):
    c = credit.create_client(session, body.name)
    await notify({"type": "credit_changed", "credit_client_id": c.id})
    return {"ok": True, "client": client_payload(c)}


@router.post("/{client_id}/payments", status_code=201)
async def record_payment(client_id: int, body: PaymentIn, session: SessionDep, ctx: CtxDep):
    cents = to_cents(body.amount)
    if cents is None:
        raise ValidationError(f"Importo non valido: {body.amount!r}")
    pay = credit.record_payment(session, client_id, cents, ctx, method=body.method)
    c = credit.get_client(session, client_id)
    await notify(
        {"type": "credit_changed", "credit_client_id": c.id},
        {"type": "session_stats_invalidated"},
    )
    return {
        "ok": True,
        "payment": {
            "id": pay.id,
            "amount": fmt_cents(pay.amount_cents),
            "method": pay.method.value,
            "created_at": pay.created_at.isoformat(),
        },
        "client": client_payload(c),
    }
