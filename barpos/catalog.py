# barpos/catalog.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy import func as sa_func
from sqlmodel import Session, select

from .errors import ValidationError
from .models import Category, Product


def stock_status(p: Product) -> str:
    """'unknown' | 'low' | 'high' | 'ok' (stessa soglia dell'inventario: 80% del massimo)."""
    if p.stock is None:
        return "unknown"
    if p.min_stock is not None and p.stock <= p.min_stock:
        return "low"
    if p.max_stock is not None and p.stock >= p.max_stock * 0.8:
        return "high"
    return "ok"


def list_products(session: Session, category_id: Optional[int] = None) -> List[Product]:
    stmt = select(Product).order_by(sa_func.lower(Product.name))
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    return list(session.exec(stmt).all())


def list_categories(session: Session) -> List[Category]:
    return list(session.exec(select(Category).order_by(Category.name)).all())


def low_stock(session: Session) -> List[Product]:
    return [p for p in list_products(session) if stock_status(p) == "low"]


def inventory_value_cents(products: Iterable[Product]) -> int:
    return sum(int(p.price_cents or 0) * int(p.stock or 0) for p in products)


def products_by_id(session: Session, ids: Iterable[int]) -> Dict[int, Product]:
    ids = list(ids)
    if not ids:
        return {}
    return {p.id: p for p in session.exec(select(Product).where(Product.id.in_(ids))).all()}


def require_orderable(prods: Dict[int, Product], product_id: int) -> Product:
    p = prods.get(product_id)
    if p is None:
        raise ValidationError(f"Prodotto {product_id} inesistente", product_id=product_id)
    if p.stock is None or p.stock <= 0:
        raise ValidationError(f"Prodotto '{p.name}' esaurito", product_id=product_id)
    return p


def decrement_stock(prods: Dict[int, Product], qty_by_product: Dict[int, int]) -> None:
    """Scarica il magazzino (mai sotto zero). Nessun commit: lo fa il chiamante."""
    for pid, qty in qty_by_product.items():
        p = prods.get(pid)
        if p is None or p.stock is None:
            continue
        p.stock = max(0, int(p.stock) - int(qty))
