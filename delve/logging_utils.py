"""Structured key=value logging for the layout generator.

Every record is one line: a level, a timestamp and the caller's fields, so a
generation run can be grepped by event name (``event=segment_proposed``) or
parsed when ``DELVE_LOG_JSON`` is enabled.

Usage:
    from delve.logging_utils import get_logger
    log = get_logger("delve.layout.graph")
    log.info(event="graph_built", points=42, segments=41)

Non-numeric values are str()'d with spaces replaced. Reserved keys: level, ts,
logger. Fields whose value is None are dropped.
"""

from __future__ import annotations

import json
import os
import sys
import time

LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40}


def _current_level() -> int:
    return LEVELS.get(os.getenv("DELVE_LOG_LEVEL", "info").lower(), 20)


def _json_mode() -> bool:
    return os.getenv("DELVE_LOG_JSON", "0") in ("1", "true", "TRUE", "yes", "on")


def _format(level: str, **fields) -> str:
    if _json_mode():
        rec = {k: v for k, v in fields.items() if v is not None}
        rec["level"] = level
        rec["ts"] = int(time.time())
        try:
            return json.dumps(rec, separators=(",", ":"), default=str)
        except (TypeError, ValueError):
            return json.dumps({"level": level, "ts": int(time.time()), "error": "json_encode_failed"})
    parts = [f"level={level}", f"ts={int(time.time())}"]
    for k, v in fields.items():
        if v is None:
            continue
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            parts.append(f"{k}={v}")
        else:
            parts.append(f"{k}={str(v).replace(' ', '_')}")
    return " ".join(parts)


class StructuredLogger:
    def __init__(self, name: str | None = None):
        self.name = name or "delve"

    def enabled(self, lvl: str) -> bool:
        return LEVELS[lvl] >= _current_level()

    def _log(self, lvl: str, **fields):
        if not self.enabled(lvl):
            return
        fields.setdefault("logger", self.name)
        stream = sys.stderr if lvl == "error" else sys.stdout
        print(_format(lvl, **fields), file=stream)

    def debug(self, **fields):
        self._log("debug", **fields)

    def info(self, **fields):
        self._log("info", **fields)

    def warn(self, **fields):
        self._log("warn", **fields)

    def error(self, **fields):
        self._log("error", **fields)


_LOGGER_CACHE: dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    if name not in _LOGGER_CACHE:
        _LOGGER_CACHE[name] = StructuredLogger(name)
    return _LOGGER_CACHE[name]


log = get_logger("delve")
