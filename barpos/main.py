import logging

from fastapi import FastAPI, Request, WebSocket
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.websockets import WebSocketDisconnect
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from .config import CONFIG
from .db import create_db_and_tables, engine, seed_if_empty
from .errors import NoOpError, PosError
from .tables import reconcile_table_statuses
from .ws import manager
from . import views_catalog, views_credit, views_orders, views_tables
from .routers import views_sessions

logging.basicConfig(
    level=getattr(logging, CONFIG.logging.level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("barpos.api")

# ✅ crea l'app PRIMA di includere i router
app = FastAPI(title="Bar POS: ordini, tavoli, sessioni")


@app.exception_handler(PosError)
async def pos_error_handler(request: Request, exc: PosError):
    if isinstance(exc, NoOpError):
        log.info("%s %s: %s", request.method, request.url.path, exc.message)
    else:
        log.warning("%s %s rifiutata (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(jsonable_encoder(exc.payload()), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"ok": False, "error": "validation_error", "detail": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.exception_handler(OperationalError)
async def storage_error_handler(request: Request, exc: OperationalError):
    # errore di infrastruttura, non di business: il client può riprovare
    log.error("errore DB su %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        {"ok": False, "error": "storage_unavailable", "detail": "Database non disponibile", "retryable": True},
        status_code=503,
    )


@app.on_event("startup")
def on_startup():
    create_db_and_tables()
    seed_if_empty()
    with Session(engine) as session:
        fixed = reconcile_table_statuses(session)
    if fixed:
        log.warning("%s tavoli riallineati all'avvio", fixed)


@app.get("/health", response_class=PlainTextResponse)
def health():
    return "OK"


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)


# ✅ include di tutti i router DOPO la creazione dell'app
app.include_router(views_tables.router)
app.include_router(views_catalog.router)
app.include_router(views_credit.router)
app.include_router(views_orders.router)
app.include_router(views_sessions.router)
