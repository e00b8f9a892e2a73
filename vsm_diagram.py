# vsm_diagram.py
# Diagram snapshot loading (dict / JSON / YAML) and boundary validation
# --------------------------------------------------------------------------------------
# Step and Connection records are validated here, where external data enters the
# system; the engine itself assumes well-formed input.
#
# Both snake_case keys (process_time) and the camelCase keys written by the diagram
# editor's JSON export (processTime) are accepted.
# --------------------------------------------------------------------------------------

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import json
import logging

import yaml

from vsm_models import Connection, ConnectionType, Step

logger = logging.getLogger(__name__)


class DiagramError(ValueError):
    """Raised when a diagram snapshot cannot be turned into engine records."""


# ==============================================================================
# Normalization helpers
# ==============================================================================

_STEP_KEYS = {
    "process_time": "processTime",
    "lead_time": "leadTime",
    "percent_complete_accurate": "percentCompleteAccurate",
    "queue_size": "queueSize",
    "batch_size": "batchSize",
    "people_count": "peopleCount",
}


def _pick(data: Dict[str, Any], key: str, alias: Optional[str] = None, default: Any = None) -> Any:
    if key in data:
        return data[key]
    if alias and alias in data:
        return data[alias]
    return default


def _normalize_step(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": data.get("id"), "name": data.get("name")}
    for key, alias in _STEP_KEYS.items():
        out[key] = _pick(data, key, alias)
    return out


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _rework_rate(data: Dict[str, Any]) -> Any:
    # null in exported JSON means no rate
    rate = _pick(data, "rework_rate", "reworkRate", 0)
    return 0 if rate is None else rate


# ==============================================================================
# Validators
# ==============================================================================

def validate_step(data: Dict[str, Any]) -> Tuple[bool, Dict[str, str]]:
    """
    Check a step record against the VSM domain rules.
    Returns (valid, errors) with errors keyed by snake_case field name.
    Fields that are absent are not checked, except the name.
    """
    d = _normalize_step(data)
    errors: Dict[str, str] = {}

    name = d.get("name")
    if not isinstance(name, str) or not name.strip():
        errors["name"] = "Name is required"

    for key in _STEP_KEYS:
        if d[key] is not None and not _is_number(d[key]):
            errors[key] = f"{key} must be a number"

    def num(key: str):
        return d[key] if _is_number(d[key]) else None

    pt, lt = num("process_time"), num("lead_time")
    if pt is not None and pt < 0:
        errors["process_time"] = "Process time must be >= 0"
    if lt is not None and lt < 0:
        errors["lead_time"] = "Lead time must be >= 0"
    if pt is not None and lt is not None and lt < pt:
        errors["lead_time"] = "Lead time must be >= process time"

    pca = num("percent_complete_accurate")
    if pca is not None and not 0 <= pca <= 100:
        errors["percent_complete_accurate"] = "%C&A must be between 0 and 100"

    if num("queue_size") is not None and d["queue_size"] < 0:
        errors["queue_size"] = "Queue size must be >= 0"
    if num("batch_size") is not None and d["batch_size"] < 1:
        errors["batch_size"] = "Batch size must be >= 1"
    if num("people_count") is not None and d["people_count"] < 1:
        errors["people_count"] = "People count must be >= 1"

    return not errors, errors


def validate_connection(data: Dict[str, Any]) -> Tuple[bool, Dict[str, str]]:
    errors: Dict[str, str] = {}

    for key in ("source", "target"):
        if not data.get(key):
            errors[key] = f"{key} is required"

    kind = data.get("type", ConnectionType.FORWARD.value)
    try:
        kind = ConnectionType(kind)
    except ValueError:
        errors["type"] = "Connection type must be 'forward' or 'rework'"
        return False, errors

    rate = _rework_rate(data)
    if not _is_number(rate):
        errors["rework_rate"] = "Rework rate must be a number"
    elif kind is ConnectionType.REWORK:
        if rate < 0 or rate > 100:
            errors["rework_rate"] = "Rework rate must be between 0 and 100"
        elif rate == 0:
            errors["rework_rate"] = "Rework connections need a rate > 0"

    return not errors, errors


# ==============================================================================
# Record builders
# ==============================================================================

def step_from_dict(data: Dict[str, Any]) -> Step:
    valid, errors = validate_step(data)
    if not valid:
        raise DiagramError(f"Invalid step {data.get('id') or data.get('name')!r}: {errors}")

    d = _normalize_step(data)
    overrides = {k: v for k, v in d.items() if k in _STEP_KEYS and v is not None}
    for key in ("queue_size", "batch_size", "people_count"):
        if key in overrides:
            overrides[key] = int(overrides[key])

    position = data.get("position") or {}
    if isinstance(position, dict):
        position = (float(position.get("x", 0.0)), float(position.get("y", 0.0)))

    step_id = data.get("id")
    if step_id:
        step = Step(id=str(step_id), name=d["name"], **overrides)
    else:
        step = Step.create(d["name"], **overrides)
    step.type = str(data.get("type") or "custom")
    step.description = str(data.get("description") or "")
    step.tools = list(data.get("tools") or [])
    step.position = tuple(position)
    return step


def connection_from_dict(data: Dict[str, Any]) -> Connection:
    valid, errors = validate_connection(data)
    if not valid:
        raise DiagramError(f"Invalid connection {data.get('id')!r}: {errors}")

    conn = Connection.create(
        str(data["source"]),
        str(data["target"]),
        ConnectionType(data.get("type", ConnectionType.FORWARD.value)),
        float(_rework_rate(data)),
    )
    if data.get("id"):
        conn.id = str(data["id"])
    return conn


def load_diagram(source: Union[Dict[str, Any], str, Path]) -> Tuple[List[Step], List[Connection]]:
    """
    Build (steps, connections) from a dict with 'steps' and 'connections' lists, or
    from a .json / .yaml / .yml file holding the same structure.
    """
    if isinstance(source, dict):
        data = source
    else:
        path = Path(source)
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
        logger.info("Loaded diagram from %s", path)

    if not isinstance(data, dict):
        raise DiagramError("Diagram must be a mapping with 'steps' and 'connections'.")

    steps = [step_from_dict(s) for s in data.get("steps") or []]
    step_ids = {s.id for s in steps}
    connections: List[Connection] = []
    for c in data.get("connections") or []:
        conn = connection_from_dict(c)
        missing = [sid for sid in (conn.source, conn.target) if sid not in step_ids]
        if missing:
            raise DiagramError(f"Connection {conn.id!r} references unknown step(s): {missing}")
        connections.append(conn)
    return steps, connections


# ==============================================================================
# Built-in demo diagram (EDIT HERE)
# ==============================================================================

CONFIG: Dict[str, Any] = {
    # ----------------------------------------------------------------------------
    # Steps of a software delivery value stream. Times are minutes.
    # percent_complete_accurate only matters for steps with a rework connection.
    # ----------------------------------------------------------------------------
    "steps": [
        {"id": "S1", "name": "Refinement",  "process_time": 20, "lead_time": 120, "percent_complete_accurate": 95},
        {"id": "S2", "name": "Development", "process_time": 60, "lead_time": 480, "percent_complete_accurate": 90},
        {"id": "S3", "name": "Code Review", "process_time": 15, "lead_time": 240, "percent_complete_accurate": 85},
        {"id": "S4", "name": "Testing",     "process_time": 30, "lead_time": 300, "percent_complete_accurate": 80},
        {"id": "S5", "name": "Deployment",  "process_time": 10, "lead_time": 60,  "percent_complete_accurate": 100},
    ],

    # ----------------------------------------------------------------------------
    # Connections. At most one forward and one rework edge per source step.
    # - S3 rework → S2 (review findings)
    # - S4 rework → S2 (failed tests)
    # ----------------------------------------------------------------------------
    "connections": [
        {"source": "S1", "target": "S2", "type": "forward"},
        {"source": "S2", "target": "S3", "type": "forward"},
        {"source": "S3", "target": "S4", "type": "forward"},
        {"source": "S4", "target": "S5", "type": "forward"},
        {"source": "S3", "target": "S2", "type": "rework", "rework_rate": 15},
        {"source": "S4", "target": "S2", "type": "rework", "rework_rate": 20},
    ],
}
