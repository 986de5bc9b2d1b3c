# barpos/ws.py
import json
import logging
from typing import Set
from fastapi import WebSocket

log = logging.getLogger("barpos.ws")


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)

    async def broadcast_text(self, message: str):
        """Invia testo a tutti i client connessi; rimuove quelli morti."""
        dead = []
        for ws in list(self.active_connections):
            try:
                await ws.send_text(message)
            except Exception as e:
                log.debug("client ws rimosso: %r", e)
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    async def broadcast_json(self, payload: dict):
        """Invia JSON a tutti i client connessi."""
        await self.broadcast_text(json.dumps(payload))


manager = ConnectionManager()


async def notify(*payloads: dict) -> None:
    """Poke di invalidazione dopo un commit: un errore qui non fa fallire la richiesta."""
    for p in payloads:
        try:
            await manager.broadcast_json(p)
        except Exception:
            log.exception("broadcast fallito: %s", p.get("type"))
