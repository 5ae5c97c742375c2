"""
project: delve
module: layout_api.py
License: MIT

Layout generation API routes.

All responses are JSON with snake_case keys. Invalid configuration yields a
400 with ``{"error": ...}``; generation itself never fails for budget or
attempt exhaustion, it just returns a smaller layout.
"""

import os
import threading

from flask import Blueprint, current_app, jsonify, request

from delve.layout import (
    PRESETS,
    STRATEGIES,
    ConfigError,
    LayoutConfig,
    RoomConfig,
    RoomPlacer,
    assemble_layout,
    coerce_seed,
    fold_seed,
    generate_seed,
)
from delve.logging_utils import get_logger

log = get_logger("delve.routes.layout")

bp_layout = Blueprint("layout", __name__)

# Simple in-process cache seed -> Layout for the default configuration.
_layout_cache = {}
_layout_cache_lock = threading.Lock()
_LAYOUT_CACHE_MAX = 8  # small LRU-ish manual cap


def _cache_disabled() -> bool:
    return os.environ.get("DELVE_DISABLE_CACHE") == "1" or bool(current_app.config.get("DELVE_DISABLE_CACHE"))


def get_cached_layout(seed):
    if _cache_disabled():
        return assemble_layout(LayoutConfig(seed=seed))
    with _layout_cache_lock:
        layout = _layout_cache.get(seed)
        if layout is not None:
            return layout
    layout = assemble_layout(LayoutConfig(seed=seed))
    with _layout_cache_lock:
        _layout_cache[seed] = layout
        if len(_layout_cache) > _LAYOUT_CACHE_MAX:
            first_key = next(iter(_layout_cache.keys()))
            if first_key != seed:
                _layout_cache.pop(first_key, None)
    return layout


def clear_layout_cache():
    with _layout_cache_lock:
        _layout_cache.clear()


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("request body must be a JSON object")
    return data


@bp_layout.route("/api/layout", methods=["POST"])
def create_layout():
    """Generate a layout.

    Body JSON (all optional):
      { "seed", "preset", "graph": {...}, "rooms": {...}, "start": [x,y,z],
        "goals": [[x,y,z], ...], "include_rooms": bool }
    """
    data = dict(_json_body())
    data["seed"] = coerce_seed(data.get("seed"))
    config = LayoutConfig.from_dict(data)
    layout = assemble_layout(config)
    log.info(event="layout_request", seed=layout.seed, points=len(layout.graph.points), rooms=len(layout.rooms))
    return jsonify(layout.to_dict())


@bp_layout.route("/api/layout/<seed>", methods=["GET"])
def layout_for_seed(seed):
    """Default-config layout. A canonical decimal path segment is the int seed."""
    layout = get_cached_layout(coerce_seed(seed))
    return jsonify(layout.to_dict())


@bp_layout.route("/api/layout/rooms", methods=["POST"])
def create_rooms():
    """Rooms only. Body: RoomConfig options plus an optional ``seed``."""
    data = dict(_json_body())
    seed = coerce_seed(data.pop("seed", None))
    if seed is None:
        seed = generate_seed()
    data["seed"] = seed
    placer = RoomPlacer(RoomConfig.from_dict(data))
    rooms = placer.generate()
    return jsonify(
        {
            "seed": seed,
            "strategy": placer.strategy.name,
            "rooms": [r.to_dict() for r in rooms],
            "metrics": placer.metrics,
        }
    )


@bp_layout.route("/api/layout/seed", methods=["POST"])
def derive_seed():
    """Return ``{seed, state}``; a seed is generated when none is supplied."""
    seed = coerce_seed(_json_body().get("seed"))
    if seed is None:
        seed = generate_seed()
    return jsonify({"seed": seed, "state": fold_seed(seed)})


@bp_layout.route("/api/layout/strategies", methods=["GET"])
def list_strategies():
    return jsonify({"strategies": list(STRATEGIES)})


@bp_layout.route("/api/layout/presets", methods=["GET"])
def list_presets():
    return jsonify({"presets": {name: cfg.to_dict() for name, cfg in PRESETS.items()}})


@bp_layout.route("/healthz", methods=["GET"])
def healthz():
    return jsonify({"status": "ok"})
