# barpos/config.py
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_FILE = Path(__file__).resolve().parent / "config.json"

log = logging.getLogger("barpos.config")

@dataclass
class DbConfig:
    url: str = "sqlite:///barpos.db"
    echo: bool = False

@dataclass
class PollingConfig:
    # ritardo massimo tollerato dai client che fanno polling (ms)
    max_staleness_ms: int = 5000

@dataclass
class LocksConfig:
    timeout_s: float = 5.0

@dataclass
class LoggingConfig:
    level: str = "INFO"

@dataclass
class AppConfig:
    # ⚠️ Usare default_factory per oggetti mutabili
    db: DbConfig = field(default_factory=DbConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    locks: LocksConfig = field(default_factory=LocksConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

def _merge(dst: dict, src: dict) -> dict:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            dst[k] = _merge(dst[k], v)
        else:
            dst[k] = v
    return dst

def _env_overrides(data: dict, env) -> dict:
    if env.get("BARPOS_DB_URL"):
        data["db"]["url"] = env["BARPOS_DB_URL"]
    if env.get("BARPOS_LOG_LEVEL"):
        data["logging"]["level"] = env["BARPOS_LOG_LEVEL"]
    if env.get("BARPOS_MAX_STALENESS_MS"):
        data["polling"]["max_staleness_ms"] = env["BARPOS_MAX_STALENESS_MS"]
    return data

def load_config(path: Path | None = None, env=None) -> AppConfig:
    path = path or CONFIG_FILE
    env = os.environ if env is None else env
    # default
    data = {
        "db": {"url": "sqlite:///barpos.db", "echo": False},
        "polling": {"max_staleness_ms": 5000},
        "locks": {"timeout_s": 5.0},
        "logging": {"level": "INFO"},
    }
    if path.exists():
        try:
            file_data = json.loads(path.read_text(encoding="utf-8"))
            data = _merge(data, file_data or {})
        except (OSError, ValueError) as e:
            # file malformato → mantieni default
            log.warning("config %s ignorato: %s", path, e)

    data = _env_overrides(data, env)

    d, p, lk, lg = data["db"], data["polling"], data["locks"], data["logging"]
    return AppConfig(
        db=DbConfig(
            url=str(d.get("url", "sqlite:///barpos.db")),
            echo=bool(d.get("echo", False)),
        ),
        polling=PollingConfig(max_staleness_ms=max(0, int(p.get("max_staleness_ms", 5000)))),
        locks=LocksConfig(timeout_s=float(lk.get("timeout_s", 5.0))),
        logging=LoggingConfig(level=str(lg.get("level", "INFO")).upper()),
    )

# istanza singleton caricata a import
CONFIG = load_config()
