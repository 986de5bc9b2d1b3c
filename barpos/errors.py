# barpos/errors.py
"""Errori di dominio del motore ordini/tavoli/sessioni.

Ogni errore porta un ``code`` stabile e lo ``status_code`` HTTP con cui
l'API lo restituisce (vedi ``main.py``).
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class PosError(Exception):
    code = "pos_error"
    status_code = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def payload(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code, "detail": self.message, **self.extra}


class ValidationError(PosError):
    code = "validation_error"
    status_code = 400


class NotFoundError(PosError):
    code = "not_found"
    status_code = 404


class ConflictError(PosError):
    code = "conflict"
    status_code = 409


class TableNotFreeError(ConflictError):
    code = "table_not_free"

    def __init__(self, message: str, pending_order_id: Optional[int] = None) -> None:
        super().__init__(message, pending_order_id=pending_order_id)
        self.pending_order_id = pending_order_id


class SessionConflictError(ConflictError):
    code = "session_conflict"


class InvalidTransitionError(PosError):
    code = "invalid_transition"
    status_code = 409


class NoOpError(PosError):
    """Merge senza modifiche: è un avviso, non un fallimento."""
    code = "no_op"
    status_code = 200

    def payload(self) -> Dict[str, Any]:
        return {"ok": True, "warning": self.code, "detail": self.message, **self.extra}


class OverpaymentError(PosError):
    code = "overpayment"
    status_code = 422
