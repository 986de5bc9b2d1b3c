# barpos/locks.py
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator

from .config import CONFIG
from .errors import ConflictError


class KeyedLocks:
    """Un lock per chiave (es. per tavolo) dentro il processo.

    Serializza la coppia "esiste un pending per il tavolo?" -> crea/merge.
    L'indice unico parziale su orders resta la garanzia finale tra processi.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def _get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lk = self._locks.get(key)
            if lk is None:
                lk = self._locks[key] = threading.Lock()
            return lk

    @contextmanager
    def hold(self, key: Hashable, timeout: float | None = None) -> Iterator[None]:
        lk = self._get(key)
        t = CONFIG.locks.timeout_s if timeout is None else timeout
        if not lk.acquire(timeout=t):
            raise ConflictError(f"Risorsa occupata ({key}), riprovare")
        try:
            yield
        finally:
            lk.release()


_TABLE_LOCKS = KeyedLocks()
_SESSION_LOCK = KeyedLocks()


def table_lock(table_id: int, timeout: float | None = None):
    return _TABLE_LOCKS.hold(("table", int(table_id)), timeout)


def session_lock(timeout: float | None = None):
    return _SESSION_LOCK.hold("session", timeout)
