# vsm_runner.py
# Caller-driven loop around the pure tick engine
# --------------------------------------------------------------------------------------
# The runner holds the current SimulationState between calls so a UI (or a script) can
# advance the simulation at its own cadence: step() for one tick, run_for(n) for a
# batch, run_until_complete() to drain. Pausing stops the runner from ticking at all.
#
# Like the live dashboard loop it replaces, step() does not carry queue history from
# one tick to the next; use run_until_complete() when the full history is needed for
# peak-queue reporting.
# --------------------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import replace
from typing import Callable, List, Optional, Sequence
import random

from vsm_config import DEFAULT_MAX_TICKS, clamp_speed
from vsm_engine import calculate_results, process_tick, run_simulation_to_completion
from vsm_models import Connection, SimulationResults, SimulationState, Step

TickCallback = Callable[[SimulationState], None]
CompleteCallback = Callable[[SimulationResults], None]


class SimulationRunner:
    """Steps a simulation tick by tick and reports progress through callbacks."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)
        self.state: Optional[SimulationState] = None
        self.steps: Sequence[Step] = []
        self.connections: Sequence[Connection] = []
        self.on_tick: Optional[TickCallback] = None
        self.on_complete: Optional[CompleteCallback] = None
        self.is_running: bool = False
        self.is_paused: bool = False
        self.results: Optional[SimulationResults] = None

        # Trace log
        self.log: List[str] = []

    # --------------------------------------------------------------------------
    # Control
    # --------------------------------------------------------------------------

    def start(self, initial_state: SimulationState, steps: Sequence[Step],
              connections: Sequence[Connection],
              on_tick: Optional[TickCallback] = None,
              on_complete: Optional[CompleteCallback] = None):
        self.state = replace(initial_state, is_running=True, is_paused=False)
        self.steps = steps
        self.connections = connections
        self.on_tick = on_tick
        self.on_complete = on_complete
        self.results = None
        self.is_running = True
        self.is_paused = False
        self.log.append(f"{self._fmt_t()} Started with {self.state.work_item_count} work item(s) "
                        f"over {len(steps)} step(s).")

    def pause(self):
        self.is_paused = True
        if self.state is not None:
            self.state = replace(self.state, is_paused=True)
        self.log.append(f"{self._fmt_t()} Paused.")

    def resume(self):
        self.is_paused = False
        if self.state is not None:
            self.state = replace(self.state, is_paused=False)
        self.log.append(f"{self._fmt_t()} Resumed.")

    def stop(self):
        self.is_running = False
        if self.state is not None:
            self.state = replace(self.state, is_running=False)
        self.log.append(f"{self._fmt_t()} Stopped.")

    def set_speed(self, speed: float) -> float:
        """Clamp and apply a new speed; returns the value actually used."""
        clamped = clamp_speed(speed)
        if self.state is not None:
            self.state = replace(self.state, speed=clamped)
        if clamped != speed:
            self.log.append(f"{self._fmt_t()} Speed {speed} clamped to {clamped}.")
        return clamped

    # --------------------------------------------------------------------------
    # Stepping
    # --------------------------------------------------------------------------

    def step(self) -> Optional[SimulationState]:
        """
        Advance one tick and return the new state.
        Returns None when the runner is not running or is paused.
        """
        if not self.is_running or self.is_paused or self.state is None:
            return None

        before = self.state.completed_count
        current = replace(self.state, queue_history=[])
        new_state = process_tick(current, self.steps, self.connections, self._rng.random)

        finished = new_state.completed_count - before
        if finished:
            self.log.append(f"{self._fmt_t(new_state)} {finished} item(s) completed. "
                            f"Completed={new_state.completed_count}/{new_state.work_item_count}")
        for step_id in new_state.detected_bottlenecks:
            if step_id not in self.state.detected_bottlenecks:
                self.log.append(f"{self._fmt_t(new_state)} Bottleneck detected at '{step_id}'.")

        if self.on_tick:
            self.on_tick(new_state)

        self.state = new_state
        if new_state.completed_count >= new_state.work_item_count:
            self._finish(calculate_results(new_state, self.steps))
        return new_state

    def run_for(self, n_ticks: int) -> Optional[SimulationState]:
        """Advance up to n_ticks ticks; stops early on completion or pause."""
        for _ in range(max(0, int(n_ticks))):
            if self.step() is None or not self.is_running:
                break
        return self.state

    def run_until_complete(self, max_ticks: int = DEFAULT_MAX_TICKS) -> Optional[SimulationResults]:
        """Drain the simulation with full queue history and return the results."""
        if not self.is_running or self.is_paused or self.state is None:
            return None
        final = run_simulation_to_completion(self.state, self.steps, self.connections,
                                             max_ticks=max_ticks, random_fn=self._rng.random)
        self.state = final
        if final.completed_count < final.work_item_count:
            self.log.append(f"{self._fmt_t()} [WARN] Tick ceiling {max_ticks} reached with "
                            f"{final.completed_count}/{final.work_item_count} completed.")
        self._finish(final.results)
        return final.results

    # --------------------------------------------------------------------------
    # Helpers
    # --------------------------------------------------------------------------

    def _finish(self, results: SimulationResults):
        self.is_running = False
        self.results = results
        self.state = replace(self.state, is_running=False, results=results)
        self.log.append(f"{self._fmt_t()} Finished: completed={results.completed_count}, "
                        f"avg_lead_time={results.avg_lead_time:.2f}, throughput={results.throughput:.4f}.")
        if self.on_complete:
            self.on_complete(results)

    def _fmt_t(self, state: Optional[SimulationState] = None) -> str:
        state = state or self.state
        t = state.elapsed_time if state is not None else 0.0
        return f"[t={t:.2f}]"
