# barpos/deps.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .config import CONFIG
from .context import RequestContext
from .db import get_session_dep

# Dipendenze tipizzate
SessionDep = Annotated[Session, Depends(get_session_dep)]


def get_request_context(request: Request) -> RequestContext:
    # l'identità arriva dal provider esterno (proxy/login) come header
    user = (request.headers.get("X-User") or "").strip() or None
    return RequestContext(user=user)


CtxDep = Annotated[RequestContext, Depends(get_request_context)]


def polled(payload: Any, status_code: int = 200) -> JSONResponse:
    """Risposta per letture in polling: contratto di freschezza esplicito."""
    return JSONResponse(
        jsonable_encoder(payload),
        status_code=status_code,
        headers={
            "Cache-Control": "no-store, max-age=0",
            "X-Snapshot-At": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "X-Max-Staleness-Ms": str(CONFIG.polling.max_staleness_ms),
        },
    )
