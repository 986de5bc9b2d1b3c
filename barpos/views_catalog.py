# barpos/views_catalog.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter

from . import catalog
from .deps import SessionDep, polled
from .models import Product
from .money import fmt_cents

router = APIRouter(prefix="/api", tags=["catalog"])


def product_payload(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "price": fmt_cents(p.price_cents),
        "price_cents": p.price_cents,
        "stock": p.stock,
        "min_stock": p.min_stock,
        "max_stock": p.max_stock,
        "category_id": p.category_id,
        "stock_status": catalog.stock_status(p),
        "orderable": bool(p.stock and p.stock > 0),
    }


@router.get("/products")
def list_products(session: SessionDep, category_id: Optional[int] = None):
    return polled([product_payload(p) for p in catalog.list_products(session, category_id)])


@router.get("/products/low-stock")
def low_stock(session: SessionDep):
    return polled([product_payload(p) for p in catalog.low_stock(session)])


@router.get("/inventory/summary")
def inventory_summary(session: SessionDep):
    prods = catalog.list_products(session)
    return polled({
        "products": len(prods),
        "low_stock": sum(1 for p in prods if catalog.stock_status(p) == "low"),
        "inventory_value": fmt_cents(catalog.inventory_value_cents(prods)),
    })


@router.get("/categories")
def list_categories(session: SessionDep):
    return polled([
        {"id": c.id, "name": c.name, "color_hex": c.color_hex}
        for c in catalog.list_categories(session)
    ])
