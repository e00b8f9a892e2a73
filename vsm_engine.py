# vsm_engine.py
# VSM Flow Simulation Engine (tick-driven)
# --------------------------------------------------------------------------------------
# Advances synthetic work items through a value stream diagram one discrete tick at a
# time. The engine is a set of pure functions: callers pass the diagram snapshot
# (steps, connections) and the previous SimulationState and receive a new state back.
#
# Components
# - Work-Item Factory: init_simulation(), generate_work_items(), start_simulation()
# - Router: route_work_item(), should_rework() (rework triggered by %C&A)
# - Tick Processor: process_tick()
# - Bottleneck Detector: detect_bottlenecks()
# - Results Aggregator: calculate_results()
# - Run Loop: run_simulation_to_completion()
#
# IMPORTANT
# - Progress grows by tick_duration * 10 per tick (PROGRESS_PER_TICK). A step with
#   process_time=30 therefore takes 3 ticks at speed 1.0.
# - Randomness only enters through the injectable random_fn used for rework draws.
# --------------------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging
import random
import uuid

from vsm_config import DEFAULT_MAX_TICKS, SimulationConfig, clamp_speed
from vsm_models import (
    BottleneckReport,
    Connection,
    ConnectionType,
    HistoryRecord,
    QueueRecord,
    SimulationResults,
    SimulationState,
    Step,
    WorkItem,
)

logger = logging.getLogger(__name__)

BOTTLENECK_THRESHOLD = 3
PROGRESS_PER_TICK = 10.0

RandomFn = Callable[[], float]


# ==============================================================================
# Work-Item Factory
# ==============================================================================

def init_simulation(steps: Sequence[Step], connections: Sequence[Connection],
                    config: Optional[SimulationConfig] = None) -> SimulationState:
    """Zeroed state sized to config.work_item_count, with a zero queue per step."""
    config = config or SimulationConfig()
    return SimulationState(
        speed=clamp_speed(config.speed),
        work_item_count=max(0, int(config.work_item_count)),
        queue_sizes_by_step_id={step.id: 0 for step in steps},
    )


def generate_work_items(count: int, first_step_id: Optional[str]) -> List[WorkItem]:
    """
    Create 'count' fresh items anchored at first_step_id.
    With no first step (empty diagram) the items are created already completed.
    """
    return [
        WorkItem(id=str(uuid.uuid4()), current_step_id=first_step_id or None)
        for _ in range(max(0, int(count)))
    ]


def start_simulation(steps: Sequence[Step], connections: Sequence[Connection],
                     config: Optional[SimulationConfig] = None) -> SimulationState:
    """init_simulation + items at the first step, flagged as running."""
    state = init_simulation(steps, connections, config)
    first_step_id = steps[0].id if steps else None
    items = generate_work_items(state.work_item_count, first_step_id)
    return _reconcile_completed(replace(state, work_items=items, is_running=True))


def set_speed(state: SimulationState, speed: float) -> SimulationState:
    return replace(state, speed=clamp_speed(speed))


def set_work_item_count(state: SimulationState, count: int) -> SimulationState:
    return replace(state, work_item_count=max(0, int(count)))


def _reconcile_completed(state: SimulationState) -> SimulationState:
    # Every item without a step is completed, including ones created that way
    inert = sum(1 for item in state.work_items if item.is_completed)
    if inert > state.completed_count:
        return replace(state, completed_count=inert)
    return state


# ==============================================================================
# Router
# ==============================================================================

def _find_connection(step_id: str, connections: Sequence[Connection],
                     kind: ConnectionType) -> Optional[Connection]:
    # First match wins; duplicate same-type edges are not disambiguated
    for c in connections:
        if c.source == step_id and c.type == kind:
            return c
    return None


def route_work_item(step: Step, connections: Sequence[Connection],
                    prefer_rework: bool = False) -> Optional[str]:
    """
    Next step id for an item that just finished 'step', or None if 'step' is terminal.
    A rework request without a rework edge falls back to the forward edge.
    """
    kind = ConnectionType.REWORK if prefer_rework else ConnectionType.FORWARD
    connection = _find_connection(step.id, connections, kind)
    if connection is not None:
        return connection.target

    if prefer_rework:
        forward = _find_connection(step.id, connections, ConnectionType.FORWARD)
        return forward.target if forward is not None else None

    return None


def has_rework_path(step: Step, connections: Sequence[Connection]) -> bool:
    return _find_connection(step.id, connections, ConnectionType.REWORK) is not None


def calculate_rework_probability(step: Step) -> float:
    """Rework probability (0-1) derived from the step's %C&A."""
    return (100.0 - step.percent_complete_accurate) / 100.0


def should_rework(step: Step, connections: Sequence[Connection],
                  random_fn: RandomFn = random.random) -> bool:
    if not has_rework_path(step, connections):
        return False
    return random_fn() < calculate_rework_probability(step)


# ==============================================================================
# Tick Processor
# ==============================================================================

def _index_steps(steps: Sequence[Step]) -> Dict[str, Step]:
    index: Dict[str, Step] = {}
    for s in steps:
        index.setdefault(s.id, s)
    return index


def _advance_item(item: WorkItem, step: Step, tick_duration: float, now: float,
                  connections: Sequence[Connection],
                  random_fn: RandomFn) -> Tuple[WorkItem, bool, Optional[str]]:
    """Return (updated item, completed this tick, destination step id)."""
    progress = item.progress + tick_duration * PROGRESS_PER_TICK
    if progress < step.process_time:
        return replace(item, progress=progress), False, None

    history = item.history + [HistoryRecord(step_id=step.id, entered_at=item.entered_at, exited_at=now)]
    rework = should_rework(step, connections, random_fn)
    next_step_id = route_work_item(step, connections, rework)

    if next_step_id is None:
        return replace(item, current_step_id=None, progress=0.0, history=history), True, None

    moved = replace(
        item,
        current_step_id=next_step_id,
        progress=0.0,
        entered_at=now,
        history=history,
        is_rework=rework,
    )
    return moved, False, next_step_id


def _tick(state: SimulationState, steps: Sequence[Step], steps_by_id: Dict[str, Step],
          connections: Sequence[Connection], random_fn: RandomFn,
          queue_history: List[QueueRecord]) -> SimulationState:
    """One tick. Appends to 'queue_history', which the caller must own."""
    tick_duration = 1.0 / state.speed
    now = state.elapsed_time + tick_duration

    completed = 0
    arrivals: Dict[str, int] = {}
    work_items: List[WorkItem] = []
    for item in state.work_items:
        if item.is_completed:
            work_items.append(item)
            continue
        step = steps_by_id.get(item.current_step_id)
        if step is None:
            logger.debug("Work item %s references unknown step %r; left unchanged.",
                         item.id, item.current_step_id)
            work_items.append(item)
            continue

        updated, finished, next_step_id = _advance_item(item, step, tick_duration, now,
                                                        connections, random_fn)
        if finished:
            completed += 1
        if next_step_id is not None:
            arrivals[next_step_id] = arrivals.get(next_step_id, 0) + 1
        work_items.append(updated)

    # Items that never had a step to visit count as completed on creation
    inert = sum(1 for item in work_items if item.is_completed)
    completed_count = max(state.completed_count + completed, inert)

    queue_sizes = dict(state.queue_sizes_by_step_id)
    for step_id, n in arrivals.items():
        queue_sizes[step_id] = queue_sizes.get(step_id, 0) + n

    for s in steps:
        queue_history.append(QueueRecord(tick=now, step_id=s.id, queue_size=queue_sizes.get(s.id, 0)))

    return replace(
        state,
        elapsed_time=now,
        work_items=work_items,
        completed_count=completed_count,
        queue_sizes_by_step_id=queue_sizes,
        queue_history=queue_history,
        detected_bottlenecks=detect_bottlenecks(steps, queue_sizes),
    )


def process_tick(state: SimulationState, steps: Sequence[Step],
                 connections: Sequence[Connection],
                 random_fn: RandomFn = random.random) -> SimulationState:
    """
    Advance every active work item by one tick and return a new state.
    A paused state is returned unchanged (no time passes, nothing moves).
    """
    if state.is_paused:
        return state
    return _tick(state, steps, _index_steps(steps), connections, random_fn,
                 list(state.queue_history))


# ==============================================================================
# Bottleneck Detector
# ==============================================================================

def detect_bottlenecks(steps: Sequence[Step], queue_sizes_by_step_id: Dict[str, int],
                       threshold: int = BOTTLENECK_THRESHOLD) -> List[str]:
    """Ids of steps whose queue counter strictly exceeds 'threshold', in diagram order."""
    return [s.id for s in steps if queue_sizes_by_step_id.get(s.id, 0) > threshold]


# ==============================================================================
# Results Aggregator
# ==============================================================================

def calculate_results(state: SimulationState, steps: Sequence[Step]) -> SimulationResults:
    """Summary KPIs from a terminal (or partial) simulation state."""
    total_lead_time = 0.0
    for item in state.work_items:
        total_lead_time += sum(h.exited_at - h.entered_at for h in item.history)
    avg_lead_time = total_lead_time / state.work_item_count if state.work_item_count > 0 else 0.0

    throughput = state.completed_count / state.elapsed_time if state.elapsed_time > 0 else 0.0

    peak_queues: Dict[str, int] = {}
    for record in state.queue_history:
        if record.step_id not in peak_queues or record.queue_size > peak_queues[record.step_id]:
            peak_queues[record.step_id] = record.queue_size

    steps_by_id = _index_steps(steps)
    bottlenecks = [
        BottleneckReport(
            step_id=step_id,
            peak_queue_size=peak,
            step_name=steps_by_id[step_id].name if step_id in steps_by_id else None,
        )
        for step_id, peak in peak_queues.items()
        if peak > BOTTLENECK_THRESHOLD
    ]
    bottlenecks.sort(key=lambda b: b.peak_queue_size, reverse=True)

    return SimulationResults(
        completed_count=state.completed_count,
        avg_lead_time=avg_lead_time,
        throughput=throughput,
        bottlenecks=bottlenecks,
        total_time=state.elapsed_time,
    )


# ==============================================================================
# Run Loop
# ==============================================================================

def run_simulation_to_completion(initial_state: SimulationState, steps: Sequence[Step],
                                 connections: Sequence[Connection],
                                 max_ticks: int = DEFAULT_MAX_TICKS,
                                 random_fn: RandomFn = random.random) -> SimulationState:
    """
    Tick until every work item completed or max_ticks ticks elapsed, then attach results.
    Hitting max_ticks is not an error: compare completed_count with work_item_count.
    """
    state = _reconcile_completed(replace(initial_state, is_running=True))
    steps_by_id = _index_steps(steps)
    queue_history = list(state.queue_history)

    ticks = 0
    if not state.is_paused:
        while state.completed_count < state.work_item_count and ticks < max_ticks:
            state = _tick(state, steps, steps_by_id, connections, random_fn, queue_history)
            ticks += 1

    if state.completed_count < state.work_item_count:
        logger.warning("Simulation stopped after %d ticks with %d/%d items completed.",
                       ticks, state.completed_count, state.work_item_count)

    state = replace(state, is_running=False)
    return replace(state, results=calculate_results(state, steps))


# ==============================================================================
# Minimal example
# ==============================================================================
if __name__ == "__main__":
    from vsm_diagram import CONFIG, load_diagram

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    demo_steps, demo_connections = load_diagram(CONFIG)

    rng = random.Random(42)
    final = run_simulation_to_completion(
        start_simulation(demo_steps, demo_connections, SimulationConfig(work_item_count=20)),
        demo_steps,
        demo_connections,
        random_fn=rng.random,
    )

    print("--- KPIs ---")
    for k, v in final.results.as_dict().items():
        print(f"{k}: {v}")
