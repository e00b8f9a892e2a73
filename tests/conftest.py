"""Shared diagram fixtures."""

import pytest

from vsm_models import Connection, ConnectionType, Step


def make_step(step_id, process_time=30, pca=100, name=None):
    return Step(
        id=step_id,
        name=name or f"Step {step_id}",
        process_time=process_time,
        lead_time=max(240, process_time),
        percent_complete_accurate=pca,
    )


@pytest.fixture
def two_step_diagram():
    """A (30) -> B (30), forward only."""
    steps = [make_step("A", name="Design"), make_step("B", name="Build")]
    connections = [Connection.create("A", "B")]
    return steps, connections


@pytest.fixture
def rework_diagram():
    """A (10) -> B (10) with a rework edge B -> A; B always fails (%C&A = 0)."""
    steps = [make_step("A", process_time=10), make_step("B", process_time=10, pca=0)]
    connections = [
        Connection.create("A", "B"),
        Connection.create("B", "A", ConnectionType.REWORK, 25),
    ]
    return steps, connections


@pytest.fixture
def step_factory():
    return make_step
