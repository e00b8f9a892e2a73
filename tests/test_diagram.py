"""Tests for diagram loading and boundary validation."""

import json

import pytest
import yaml

from vsm_diagram import (
    CONFIG,
    DiagramError,
    connection_from_dict,
    load_diagram,
    step_from_dict,
    validate_connection,
    validate_step,
)
from vsm_models import ConnectionType


def test_load_builtin_diagram():
    steps, connections = load_diagram(CONFIG)
    assert [s.id for s in steps] == ["S1", "S2", "S3", "S4", "S5"]
    assert len(connections) == 6
    rework = [c for c in connections if c.type is ConnectionType.REWORK]
    assert [(c.source, c.target, c.rework_rate) for c in rework] == [("S3", "S2", 15.0), ("S4", "S2", 20.0)]
    assert connections[0].id == "S1-S2"


def test_step_from_camel_case_export():
    step = step_from_dict({
        "id": "dev",
        "name": "Development",
        "processTime": 45,
        "leadTime": 90,
        "percentCompleteAccurate": 80,
        "queueSize": 2,
        "batchSize": 1,
        "peopleCount": 3,
        "tools": ["IDE", "Git"],
        "position": {"x": 10, "y": 20},
    })
    assert step.id == "dev"
    assert step.process_time == 45
    assert step.lead_time == 90
    assert step.percent_complete_accurate == 80
    assert step.people_count == 3
    assert step.tools == ["IDE", "Git"]
    assert step.position == (10.0, 20.0)


def test_step_without_id_gets_generated_one():
    step = step_from_dict({"name": "Review"})
    assert step.id
    assert step.process_time == 60
    assert step.lead_time == 240


def test_validate_step_reports_each_field():
    valid, errors = validate_step({
        "name": "  ",
        "process_time": 100,
        "lead_time": 50,
        "percent_complete_accurate": 120,
        "queue_size": -1,
        "batch_size": 0,
        "people_count": 0,
    })
    assert valid is False
    assert errors == {
        "name": "Name is required",
        "lead_time": "Lead time must be >= process time",
        "percent_complete_accurate": "%C&A must be between 0 and 100",
        "queue_size": "Queue size must be >= 0",
        "batch_size": "Batch size must be >= 1",
        "people_count": "People count must be >= 1",
    }


def test_validate_step_rejects_non_numbers():
    valid, errors = validate_step({"name": "x", "processTime": "fast"})
    assert valid is False
    assert "process_time" in errors


def test_validate_connection():
    assert validate_connection({"source": "a", "target": "b"}) == (True, {})
    assert validate_connection({"source": "a", "target": "b", "type": "rework", "reworkRate": 10}) == (True, {})

    valid, errors = validate_connection({"source": "a", "target": "b", "type": "rework", "rework_rate": 0})
    assert not valid
    assert errors["rework_rate"] == "Rework connections need a rate > 0"

    valid, errors = validate_connection({"source": "a", "target": "b", "type": "rework", "rework_rate": 150})
    assert errors["rework_rate"] == "Rework rate must be between 0 and 100"

    valid, errors = validate_connection({"source": "a", "type": "sideways"})
    assert set(errors) == {"target", "type"}


def test_connection_keeps_explicit_id():
    conn = connection_from_dict({"id": "e1", "source": "a", "target": "b"})
    assert conn.id == "e1"
    assert conn.type is ConnectionType.FORWARD


def test_invalid_step_raises():
    with pytest.raises(DiagramError):
        load_diagram({"steps": [{"id": "a", "name": "A", "process_time": 10, "lead_time": 5}]})


def test_connection_to_unknown_step_raises():
    data = {
        "steps": [{"id": "a", "name": "A"}],
        "connections": [{"source": "a", "target": "zzz"}],
    }
    with pytest.raises(DiagramError, match="unknown step"):
        load_diagram(data)


def test_non_mapping_diagram_raises(tmp_path):
    path = tmp_path / "diagram.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(DiagramError):
        load_diagram(path)


def test_load_yaml_file(tmp_path):
    path = tmp_path / "diagram.yaml"
    path.write_text(yaml.safe_dump(CONFIG))
    steps, connections = load_diagram(str(path))
    assert len(steps) == 5
    assert len(connections) == 6


def test_load_json_export(tmp_path):
    path = tmp_path / "vsm.json"
    path.write_text(json.dumps({
        "steps": [
            {"id": "a", "name": "A", "processTime": 10, "leadTime": 20},
            {"id": "b", "name": "B", "processTime": 20, "leadTime": 40, "percentCompleteAccurate": 70},
        ],
        "connections": [
            {"id": "a-b", "source": "a", "target": "b", "type": "forward", "reworkRate": 0},
            {"id": "b-a", "source": "b", "target": "a", "type": "rework", "reworkRate": 30},
        ],
    }))
    steps, connections = load_diagram(path)
    assert steps[1].percent_complete_accurate == 70
    assert connections[1].type is ConnectionType.REWORK
    assert connections[1].rework_rate == 30.0


def test_null_rework_rate_reads_as_zero():
    conn = connection_from_dict({"source": "a", "target": "b", "type": "forward", "reworkRate": None})
    assert conn.rework_rate == 0.0

    valid, errors = validate_connection({"source": "b", "target": "a", "type": "rework", "rework_rate": None})
    assert not valid
    assert "rework_rate" in errors


@pytest.mark.parametrize("kind", ["forward", "rework"])
def test_non_numeric_rework_rate_is_a_diagram_error(kind):
    data = {"source": "a", "target": "b", "type": kind, "reworkRate": "lots"}
    valid, errors = validate_connection(data)
    assert not valid
    assert errors["rework_rate"] == "Rework rate must be a number"

    with pytest.raises(DiagramError):
        connection_from_dict(data)
    with pytest.raises(DiagramError):
        load_diagram({
            "steps": [{"id": "a", "name": "A"}, {"id": "b", "name": "B"}],
            "connections": [data],
        })
