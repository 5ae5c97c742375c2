import os
from typing import Dict


def metrics_enabled() -> bool:
    val = os.environ.get("DELVE_ENABLE_GENERATION_METRICS", "1").lower()
    return val not in {"0", "false", "no", ""}


def init_graph_metrics() -> Dict[str, int | float | bool]:
    return {
        'points': 0,
        'segments': 0,
        'loop_closures': 0,
        'loops_connected': 0,
        'spurs_built': 0,
        'stalls': 0,
        'budget_exhausted': False,
    }


def init_room_metrics() -> Dict[str, int | float | bool]:
    return {
        'rooms_placed': 0,
        'attempts': 0,
        'rejected_overlap': 0,
        'rejected_door': 0,
        'extra_connections': 0,
        'rings_closed_early': 0,
    }


def init_layout_metrics() -> Dict[str, int | float | bool]:
    return {
        'runtime_ms': 0.0,
    }
