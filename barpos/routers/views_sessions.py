# barpos/routers/views_sessions.py
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from .. import sessions as ledger
from ..deps import CtxDep, SessionDep, polled
from ..models import BarSession, ShiftType
from ..ws import notify

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class OpenIn(BaseModel):
    shift_type: ShiftType


def session_payload(s: BarSession) -> dict:
    return {
        "id": s.id,
        "shift_type": s.shift_type.value,
        "start_time": s.start_time,
        "end_time": s.end_time,
        "status": s.status.value,
        "opened_by": s.opened_by,
        "closed_by": s.closed_by,
    }


@router.get("/active")
def active_session(session: SessionDep, ctx: CtxDep):
    s = ledger.get_active_session(session)
    if not s:
        return polled({"ok": True, "session": None, "stats": None})
    stats = ledger.compute_stats(session, s, ctx)
    return polled({"ok": True, "session": session_payload(s), "stats": stats.as_money()})


@router.get("/{session_id}/stats")
def session_stats(session_id: int, session: SessionDep, ctx: CtxDep):
    s = ledger.get_session(session, session_id)
    stats = ledger.compute_stats(session, s, ctx)
    return polled({"ok": True, "session": session_payload(s), "stats": stats.as_money()})


@router.post("/open", status_code=201)
async def open_session(body: OpenIn, session: SessionDep, ctx: CtxDep):
    s = ledger.open_session(session, body.shift_type, ctx)
    await notify({"type": "session_stats_invalidated", "session_id": s.id})
    return {"ok": True, "session": session_payload(s)}


@router.post("/close")
async def close_session(session: SessionDep, ctx: CtxDep):
    s = ledger.close_session(session, ctx)
    stats = ledger.compute_stats(session, s, ctx)
    await notify({"type": "session_stats_invalidated", "session_id": s.id})
    return {"ok": True, "session": session_payload(s), "stats": stats.as_money()}
