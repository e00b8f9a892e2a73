# vsm_scenario.py
# What-if scenarios and baseline comparison
# --------------------------------------------------------------------------------------
# A Scenario is a deep copy of the diagram taken when it is created, so editing the
# live diagram (or the scenario) never leaks into the other. ComparisonEngine runs the
# baseline and the scenario through the same pure engine functions and reports the
# percentage improvement of lead time and throughput.
# --------------------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import copy
import logging
import random
import uuid

from vsm_config import DEFAULT_MAX_TICKS, SimulationConfig, clamp_speed
from vsm_engine import run_simulation_to_completion, start_simulation
from vsm_models import Connection, SimulationResults, Step

logger = logging.getLogger(__name__)


@dataclass
class Scenario:
    id: str
    name: str
    steps: List[Step]
    connections: List[Connection]
    saved: bool = False
    results: Optional[SimulationResults] = None

    @classmethod
    def from_diagram(cls, name: str, steps: Sequence[Step],
                     connections: Sequence[Connection]) -> "Scenario":
        return cls(
            id=str(uuid.uuid4()),
            name=name,
            steps=copy.deepcopy(list(steps)),
            connections=copy.deepcopy(list(connections)),
        )

    def step(self, step_id: str) -> Optional[Step]:
        for s in self.steps:
            if s.id == step_id:
                return s
        return None


@dataclass
class ComparisonResults:
    baseline: SimulationResults
    scenario: SimulationResults
    improvements: Dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "baseline": self.baseline.as_dict(),
            "scenario": self.scenario.as_dict(),
            "improvements": dict(self.improvements),
        }


class ComparisonEngine:
    """Runs baseline and scenario simulations to completion and diffs their KPIs."""

    def __init__(self, work_item_count: int, max_ticks: int = DEFAULT_MAX_TICKS,
                 seed: Optional[int] = None, speed: float = 1.0):
        self.work_item_count = work_item_count
        self.speed = clamp_speed(speed)
        self.max_ticks = max_ticks
        self.seed = seed

    def run_baseline(self, steps: Sequence[Step], connections: Sequence[Connection]) -> SimulationResults:
        return self._run_to_completion(steps, connections)

    def run_scenario(self, steps: Sequence[Step], connections: Sequence[Connection]) -> SimulationResults:
        return self._run_to_completion(steps, connections)

    def calculate_improvements(self, baseline: SimulationResults,
                               scenario: SimulationResults) -> Dict[str, float]:
        """Positive numbers are improvements: shorter lead time, higher throughput."""
        return {
            "lead_time": self._percentage_change(baseline.avg_lead_time, scenario.avg_lead_time, "decrease"),
            "throughput": self._percentage_change(baseline.throughput, scenario.throughput, "increase"),
        }

    def compare(self, baseline_steps: Sequence[Step], baseline_connections: Sequence[Connection],
                scenario: Scenario) -> ComparisonResults:
        baseline = self.run_baseline(baseline_steps, baseline_connections)
        result = self.run_scenario(scenario.steps, scenario.connections)
        scenario.results = result
        return ComparisonResults(
            baseline=baseline,
            scenario=result,
            improvements=self.calculate_improvements(baseline, result),
        )

    def _run_to_completion(self, steps: Sequence[Step], connections: Sequence[Connection]) -> SimulationResults:
        # Fresh generator per run so identical inputs give identical results
        rng = random.Random(self.seed)
        cfg = SimulationConfig(work_item_count=self.work_item_count, speed=self.speed)
        state = start_simulation(steps, connections, cfg)
        final = run_simulation_to_completion(state, steps, connections,
                                             max_ticks=self.max_ticks, random_fn=rng.random)
        return final.results

    @staticmethod
    def _percentage_change(baseline: float, scenario: float, direction: str) -> float:
        if baseline == 0:
            return 0.0
        change = (scenario - baseline) / baseline * 100.0
        return -change if direction == "decrease" else change


class ScenarioManager:
    """In-memory list of scenarios plus the last comparison."""

    def __init__(self, work_item_count: int = 10, max_ticks: int = DEFAULT_MAX_TICKS,
                 seed: Optional[int] = None, speed: float = 1.0):
        self.engine = ComparisonEngine(work_item_count, max_ticks=max_ticks, seed=seed, speed=speed)
        self.scenarios: List[Scenario] = []
        self.active_scenario_id: Optional[str] = None
        self.comparison_results: Optional[ComparisonResults] = None

    def create_scenario(self, steps: Sequence[Step], connections: Sequence[Connection],
                        name: Optional[str] = None) -> Scenario:
        scenario = Scenario.from_diagram(name or f"Scenario {len(self.scenarios) + 1}", steps, connections)
        self.scenarios.append(scenario)
        return scenario

    def get_scenario(self, scenario_id: str) -> Optional[Scenario]:
        for s in self.scenarios:
            if s.id == scenario_id:
                return s
        return None

    def remove_scenario(self, scenario_id: str):
        self.scenarios = [s for s in self.scenarios if s.id != scenario_id]
        if self.active_scenario_id == scenario_id:
            self.active_scenario_id = None

    def update_scenario(self, scenario_id: str, **updates: Any) -> Optional[Scenario]:
        scenario = self.get_scenario(scenario_id)
        if scenario is None:
            return None
        for key, value in updates.items():
            if not hasattr(scenario, key) or key == "id":
                raise AttributeError(f"Scenario has no updatable field '{key}'")
            setattr(scenario, key, value)
        return scenario

    def set_active_scenario(self, scenario_id: Optional[str]):
        self.active_scenario_id = scenario_id

    def run_comparison(self, scenario_id: str, steps: Sequence[Step],
                       connections: Sequence[Connection]) -> Optional[ComparisonResults]:
        scenario = self.get_scenario(scenario_id)
        if scenario is None:
            logger.warning("No scenario with id %s; comparison skipped.", scenario_id)
            return None
        self.active_scenario_id = scenario_id
        self.comparison_results = self.engine.compare(steps, connections, scenario)
        return self.comparison_results

    def clear_comparison(self):
        self.comparison_results = None
        self.active_scenario_id = None

    def reset(self):
        self.scenarios = []
        self.clear_comparison()
