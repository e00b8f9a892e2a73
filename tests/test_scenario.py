"""Tests for scenarios and baseline comparison."""

import copy

import pytest

from vsm_diagram import CONFIG, load_diagram
from vsm_models import SimulationResults
from vsm_scenario import ComparisonEngine, Scenario, ScenarioManager


def _results(avg_lead_time, throughput):
    return SimulationResults(completed_count=1, avg_lead_time=avg_lead_time,
                             throughput=throughput, bottlenecks=[], total_time=1.0)


def test_scenario_is_a_deep_copy(two_step_diagram):
    steps, connections = two_step_diagram
    scenario = Scenario.from_diagram("Faster build", steps, connections)

    scenario.step("B").process_time = 10
    scenario.connections.clear()

    assert steps[1].process_time == 30
    assert len(connections) == 1
    assert scenario.saved is False
    assert scenario.results is None
    assert scenario.step("missing") is None


def test_calculate_improvements():
    engine = ComparisonEngine(work_item_count=5)
    improvements = engine.calculate_improvements(_results(10.0, 1.0), _results(5.0, 2.0))
    assert improvements == {"lead_time": pytest.approx(50.0), "throughput": pytest.approx(100.0)}


def test_calculate_improvements_zero_baseline():
    engine = ComparisonEngine(work_item_count=5)
    assert engine.calculate_improvements(_results(0.0, 0.0), _results(5.0, 2.0)) == {
        "lead_time": 0.0,
        "throughput": 0.0,
    }


def test_compare_faster_step(two_step_diagram):
    steps, connections = two_step_diagram
    scenario = Scenario.from_diagram("Faster build", steps, connections)
    scenario.step("B").process_time = 10

    comparison = ComparisonEngine(work_item_count=5).compare(steps, connections, scenario)

    assert comparison.baseline.avg_lead_time == pytest.approx(6.0)
    assert comparison.scenario.avg_lead_time == pytest.approx(4.0)
    assert comparison.improvements["lead_time"] == pytest.approx(100 / 3)
    assert comparison.improvements["throughput"] == pytest.approx(50.0)
    assert scenario.results == comparison.scenario
    assert set(comparison.as_dict()) == {"baseline", "scenario", "improvements"}


def test_seeded_runs_are_reproducible():
    steps, connections = load_diagram(CONFIG)
    engine = ComparisonEngine(work_item_count=15, seed=123)
    assert engine.run_baseline(steps, connections) == engine.run_scenario(steps, connections)


def test_comparison_leaves_baseline_untouched():
    steps, connections = load_diagram(CONFIG)
    snapshot = copy.deepcopy((steps, connections))
    step_list, connection_list = steps, connections

    manager = ScenarioManager(work_item_count=10, seed=5)
    scenario = manager.create_scenario(steps, connections)
    scenario.steps[1].process_time = 30
    manager.run_comparison(scenario.id, steps, connections)

    assert steps is step_list and connections is connection_list
    assert (steps, connections) == snapshot


def test_manager_names_and_removes_scenarios(two_step_diagram):
    steps, connections = two_step_diagram
    manager = ScenarioManager()
    first = manager.create_scenario(steps, connections)
    second = manager.create_scenario(steps, connections)
    assert [s.name for s in manager.scenarios] == ["Scenario 1", "Scenario 2"]

    manager.set_active_scenario(first.id)
    manager.remove_scenario(first.id)
    assert manager.active_scenario_id is None
    assert manager.scenarios == [second]


def test_manager_update_scenario(two_step_diagram):
    steps, connections = two_step_diagram
    manager = ScenarioManager()
    scenario = manager.create_scenario(steps, connections)

    manager.update_scenario(scenario.id, name="Renamed", saved=True)
    assert scenario.name == "Renamed"
    assert scenario.saved is True
    assert manager.update_scenario("nope", name="x") is None
    with pytest.raises(AttributeError):
        manager.update_scenario(scenario.id, id="other")


def test_manager_run_comparison(two_step_diagram):
    steps, connections = two_step_diagram
    manager = ScenarioManager(work_item_count=3)
    scenario = manager.create_scenario(steps, connections)

    assert manager.run_comparison("unknown", steps, connections) is None

    result = manager.run_comparison(scenario.id, steps, connections)
    assert manager.active_scenario_id == scenario.id
    assert manager.comparison_results is result
    assert result.improvements == {"lead_time": 0.0, "throughput": 0.0}

    manager.clear_comparison()
    assert manager.comparison_results is None
    assert manager.active_scenario_id is None

    manager.reset()
    assert manager.scenarios == []


def test_comparison_runs_at_configured_speed(two_step_diagram):
    steps, connections = two_step_diagram
    # Two steps of 30 take 6 ticks at speed 1 and 12 ticks at speed 2
    normal = ComparisonEngine(work_item_count=2, max_ticks=6)
    fast = ComparisonEngine(work_item_count=2, max_ticks=6, speed=2.0)

    assert normal.run_baseline(steps, connections).completed_count == 2
    clipped = fast.run_baseline(steps, connections)
    assert clipped.completed_count == 0
    assert clipped.total_time == 3.0

    drained = ComparisonEngine(work_item_count=2, speed=2.0).run_baseline(steps, connections)
    assert drained.completed_count == 2
    assert drained.total_time == 6.0
    assert drained.avg_lead_time == pytest.approx(6.0)
    assert drained.throughput == pytest.approx(2 / 6)


def test_manager_passes_speed_to_engine():
    assert ScenarioManager(speed=2.0).engine.speed == 2.0
    assert ScenarioManager(speed=0).engine.speed == 0.25
    assert ScenarioManager().engine.speed == 1.0
