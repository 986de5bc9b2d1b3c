# barpos/credit.py
"""Registro crediti clienti.

Il credito si carica solo alla chiusura (``completed``) di un ordine fatturato
a credito, mai alla creazione: un ordine pending può ancora cambiare.
I pagamenti oltre il saldo vengono rifiutati (niente credito a favore).
"""
from __future__ import annotations

import logging
from typing import List

from sqlalchemy import func as sa_func, update
from sqlmodel import Session, select

from .context import RequestContext
from .errors import NotFoundError, OverpaymentError, ValidationError
from .models import CreditClient, CreditPayment, PaymentMethod
from .money import fmt_cents

log = logging.getLogger("barpos.credit")


def get_client(session: Session, client_id: int) -> CreditClient:
    c = session.get(CreditClient, client_id)
    if not c:
        raise NotFoundError(f"Cliente credito {client_id} non trovato")
    return c


def list_clients(session: Session) -> List[CreditClient]:
    return list(session.exec(select(CreditClient).order_by(sa_func.lower(CreditClient.name))).all())


def create_client(session: Session, name: str) -> CreditClient:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Nome cliente obbligatorio")
    c = CreditClient(name=name)
    session.add(c)
    session.commit()
    session.refresh(c)
    log.info("cliente credito creato id=%s name=%r", c.id, c.name)
    return c


def charge(session: Session, client_id: int, amount_cents: int) -> CreditClient:
    """Aumenta il saldo. Nessun commit: fa parte della transazione del cambio stato."""
    if amount_cents < 0:
        raise ValidationError("Importo negativo")
    c = get_client(session, client_id)
    # incremento lato SQL: niente lettura-modifica-scrittura tra worker
    session.exec(
        update(CreditClient)
        .where(CreditClient.id == c.id)
        .values(total_credit_cents=CreditClient.total_credit_cents + int(amount_cents))
        .execution_options(synchronize_session=False)
    )
    session.refresh(c)
    log.info("credito +%s su cliente %s (saldo %s)", fmt_cents(amount_cents), c.id, fmt_cents(c.total_credit_cents))
    return c


def record_payment(
    session: Session,
    client_id: int,
    amount_cents: int,
    ctx: RequestContext,
    method: PaymentMethod = PaymentMethod.cash,
) -> CreditPayment:
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("L'importo del pagamento deve essere positivo")
    c = get_client(session, client_id)

    try:
        # il controllo del saldo sta nel WHERE: due pagamenti concorrenti non scendono sotto zero
        res = session.exec(
            update(CreditClient)
            .where(CreditClient.id == c.id, CreditClient.total_credit_cents >= amount_cents)
            .values(total_credit_cents=CreditClient.total_credit_cents - amount_cents)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            session.refresh(c)
            balance = int(c.total_credit_cents or 0)
            raise OverpaymentError(
                f"Pagamento {fmt_cents(amount_cents)} superiore al saldo {fmt_cents(balance)}",
                balance=fmt_cents(balance),
            )
        pay = CreditPayment(
            credit_client_id=c.id,
            amount_cents=amount_cents,
            method=method,
            created_at=ctx.now(),
            recorded_by=ctx.user,
        )
        session.add(pay)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(pay)
    session.refresh(c)
    log.info("pagamento credito %s cliente=%s metodo=%s", fmt_cents(amount_cents), c.id, method.value)
    return pay


def active_credits_cents(session: Session) -> int:
    total = session.exec(select(sa_func.coalesce(sa_func.sum(CreditClient.total_credit_cents), 0))).one()
    return int(total or 0)
