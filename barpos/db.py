from sqlmodel import SQLModel, create_engine, Session, select
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import CONFIG

# Modelli (solo import: nessuna logica qui)
from .models import (
    Category, CreditClient, DiningTable, Product, TableLocation,
)

# ---- Engine ----
def make_engine(url: str, echo: bool = False) -> Engine:
    is_sqlite = url.startswith("sqlite")
    in_memory = is_sqlite and (url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url)

    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}

    if in_memory:
        # un'unica connessione condivisa, altrimenti ogni connessione vede un DB vuoto
        eng = create_engine(url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
    else:
        eng = create_engine(
            url,
            echo=echo,
            connect_args=connect_args,
            pool_pre_ping=True,
            pool_size=10,       # default 5 -> un po' più ampio
            max_overflow=20,    # default 10
            pool_timeout=10,    # attesa per prendere una connessione
            pool_recycle=1800,  # ricicla connessioni stantie
        )

    # Migliorie per SQLite
    if is_sqlite:
        @event.listens_for(eng, "connect")
        def set_sqlite_pragmas(dbapi_connection, connection_record):
            cur = dbapi_connection.cursor()
            if not in_memory:
                # WAL migliora i read paralleli con write
                cur.execute("PRAGMA journal_mode=WAL;")
            # Timeout quando il DB è lockato da un writer
            cur.execute("PRAGMA busy_timeout=30000;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return eng


engine = make_engine(CONFIG.db.url, echo=CONFIG.db.echo)

# ---- Schema ----
def create_db_and_tables(eng: Engine | None = None):
    SQLModel.metadata.create_all(eng or engine)

# ---- Sessioni: dipendenza FastAPI corretta ----
def get_session_dep():
    """Dipendenza per FastAPI: garantisce sempre la chiusura della sessione."""
    with Session(engine, expire_on_commit=False) as session:
        yield session

# ---- Seed ----
def seed_if_empty(eng: Engine | None = None):
    """Seed minimale: apre una sola sessione e la chiude correttamente."""
    with Session(eng or engine) as session:
        if not session.exec(select(Category)).first():
            session.add_all([
                Category(name="Bebidas", color_hex="#0ea5e9"),
                Category(name="Cervejas", color_hex="#f59e0b"),
                Category(name="Petiscos", color_hex="#ef4444"),
            ])
            session.commit()

        if not session.exec(select(Product)).first():
            cats = {c.name: c.id for c in session.exec(select(Category)).all()}
            session.add_all([
                Product(name="Água 0.5L",      price_cents=100, stock=120, min_stock=24, max_stock=240, category_id=cats["Bebidas"]),
                Product(name="Coca-Cola",      price_cents=250, stock=60,  min_stock=12, max_stock=120, category_id=cats["Bebidas"]),
                Product(name="Cerveja 0.33L",  price_cents=300, stock=96,  min_stock=24, max_stock=192, category_id=cats["Cervejas"]),
                Product(name="Cerveja 0.5L",   price_cents=500, stock=48,  min_stock=12, max_stock=96,  category_id=cats["Cervejas"]),
                Product(name="Batatas fritas", price_cents=400, stock=30,  min_stock=5,  max_stock=50,  category_id=cats["Petiscos"]),
                Product(name="Prego no pão",   price_cents=650, stock=20,  min_stock=5,  max_stock=40,  category_id=cats["Petiscos"]),
            ])
            session.commit()

        if not session.exec(select(DiningTable)).first():
            layout = (
                [(n, TableLocation.main_hall, 4) for n in range(1, 9)]
                + [(n, TableLocation.balcony, 2) for n in range(9, 12)]
                + [(n, TableLocation.terrace, 6) for n in range(12, 16)]
            )
            session.add_all([
                DiningTable(number=n, location=loc, capacity=cap) for n, loc, cap in layout
            ])
            session.commit()

        if not session.exec(select(CreditClient)).first():
            session.add(CreditClient(name="Cliente da casa"))
            session.commit()
