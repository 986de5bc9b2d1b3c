import os

# DB in memoria per i test (prima di importare barpos.*)
os.environ.setdefault("BARPOS_DB_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from barpos.context import RequestContext, fixed_clock
from barpos.db import create_db_and_tables, get_session_dep, make_engine
from barpos.models import (
    Category, CreditClient, DiningTable, Product, TableLocation,
)

T0 = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as s:
        yield s


@pytest.fixture
def seeded(session):
    """Catalogo e sala minimi con id noti."""
    drinks = Category(name="Bebidas")
    session.add(drinks)
    session.commit()

    p1 = Product(name="Cerveja", price_cents=500, stock=50, min_stock=5, max_stock=100, category_id=drinks.id)
    p2 = Product(name="Coca-Cola", price_cents=300, stock=20, min_stock=5, max_stock=40, category_id=drinks.id)
    out = Product(name="Vinho", price_cents=1200, stock=0, min_stock=2, max_stock=10, category_id=drinks.id)
    session.add_all([p1, p2, out])

    tables = [DiningTable(id=n, number=n, location=TableLocation.main_hall) for n in range(1, 13)]
    session.add_all(tables)

    client = CreditClient(name="Sr. Joaquim")
    session.add(client)
    session.commit()
    return {"p1": p1, "p2": p2, "out": out, "client": client}


@pytest.fixture
def ctx():
    return RequestContext(user="caixa1", clock=fixed_clock(T0 + timedelta(minutes=10)))


def at(minutes: int, user: str = "caixa1") -> RequestContext:
    return RequestContext(user=user, clock=fixed_clock(T0 + timedelta(minutes=minutes)))


@pytest.fixture
def client(engine, seeded):
    from barpos.main import app

    def _override():
        with Session(engine, expire_on_commit=False) as s:
            yield s

    app.dependency_overrides[get_session_dep] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def at_minute():
    return at
