# barpos/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional


@dataclass(frozen=True)
class RequestContext:
    """Utente e orologio espliciti per ogni operazione (niente globali)."""

    user: Optional[str] = None
    clock: Callable[[], datetime] = field(default=datetime.utcnow)

    def now(self) -> datetime:
        return self.clock()


def fixed_clock(at: datetime) -> Callable[[], datetime]:
    return lambda: at
