# vsm_models.py
# Value Stream Map (VSM) records used by the flow simulation
# --------------------------------------------------------------------------------------
# Diagram records (Step, Connection) are read-only snapshots handed to the engine.
# Simulation records (WorkItem, SimulationState, ...) are owned by the engine and are
# never mutated in place: every update builds a new object via dataclasses.replace.
#
# Units
# - process_time / lead_time are minutes of work as entered on the diagram.
# - elapsed_time / entered_at / exited_at are simulated time units (ticks / speed).
# --------------------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import uuid

from vsm_config import clamp_speed


# ==============================================================================
# Diagram records
# ==============================================================================

class ConnectionType(str, Enum):
    FORWARD = "forward"
    REWORK = "rework"


@dataclass
class Step:
    """
    Process node of the value stream.
    - process_time: active hands-on minutes (> 0). Drives progress in the tick loop.
    - lead_time: total elapsed minutes including waiting (>= process_time).
    - percent_complete_accurate: %C&A, 0-100. 100 - %C&A is the rework probability
      whenever the step has an outgoing rework connection.
    - queue_size, batch_size, people_count: diagram display fields, not consumed by
      the tick loop.
    """
    id: str
    name: str
    process_time: float = 60.0
    lead_time: float = 240.0
    percent_complete_accurate: float = 100.0
    queue_size: int = 0
    batch_size: int = 1
    people_count: int = 1
    type: str = "custom"
    description: str = ""
    tools: List[str] = field(default_factory=list)
    position: Tuple[float, float] = (0.0, 0.0)

    @classmethod
    def create(cls, name: str, **overrides: Any) -> "Step":
        """Build a step with a generated id and diagram defaults."""
        return cls(id=str(uuid.uuid4()), name=name, **overrides)


@dataclass
class Connection:
    """Directed edge between two steps. rework_rate (0-100) is display metadata only."""
    id: str
    source: str
    target: str
    type: ConnectionType = ConnectionType.FORWARD
    rework_rate: float = 0.0

    @classmethod
    def create(cls, source: str, target: str,
               type: ConnectionType = ConnectionType.FORWARD,
               rework_rate: float = 0.0) -> "Connection":
        return cls(
            id=f"{source}-{target}",
            source=source,
            target=target,
            type=ConnectionType(type),
            rework_rate=float(rework_rate),
        )


# ==============================================================================
# Simulation records
# ==============================================================================

@dataclass(frozen=True)
class HistoryRecord:
    """One visit of a work item to a step."""
    step_id: str
    entered_at: float
    exited_at: float


@dataclass
class WorkItem:
    """
    Synthetic unit of work flowing through the diagram.
    current_step_id None means completed; a completed item never moves again.
    """
    id: str
    current_step_id: Optional[str]
    progress: float = 0.0
    entered_at: float = 0.0
    history: List[HistoryRecord] = field(default_factory=list)
    is_rework: bool = False

    @property
    def is_completed(self) -> bool:
        return self.current_step_id is None


@dataclass(frozen=True)
class QueueRecord:
    tick: float
    step_id: str
    queue_size: int


@dataclass(frozen=True)
class BottleneckReport:
    step_id: str
    peak_queue_size: int
    step_name: Optional[str]


@dataclass
class SimulationResults:
    completed_count: int
    avg_lead_time: float
    throughput: float
    bottlenecks: List[BottleneckReport]
    total_time: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SimulationState:
    """
    Full simulation state threaded from tick to tick by the caller.

    queue_sizes_by_step_id counts arrivals per step during the run; it is never
    decremented, so it reads as a congestion proxy rather than a live queue length.
    queue_history gains one record per step per tick.
    """
    is_running: bool = False
    is_paused: bool = False
    speed: float = 1.0
    work_item_count: int = 10
    work_items: List[WorkItem] = field(default_factory=list)
    completed_count: int = 0
    elapsed_time: float = 0.0
    queue_sizes_by_step_id: Dict[str, int] = field(default_factory=dict)
    queue_history: List[QueueRecord] = field(default_factory=list)
    detected_bottlenecks: List[str] = field(default_factory=list)
    results: Optional[SimulationResults] = None

    def __post_init__(self):
        self.speed = clamp_speed(self.speed)

    @property
    def active_count(self) -> int:
        return sum(1 for item in self.work_items if not item.is_completed)

    def snapshot(self) -> Dict[str, Any]:
        """Lightweight view for dashboards (no work item or history detail)."""
        return {
            "is_running": self.is_running,
            "is_paused": self.is_paused,
            "speed": self.speed,
            "work_item_count": self.work_item_count,
            "completed_count": self.completed_count,
            "active_count": self.active_count,
            "elapsed_time": round(self.elapsed_time, 6),
            "queue_sizes_by_step_id": dict(self.queue_sizes_by_step_id),
            "detected_bottlenecks": list(self.detected_bottlenecks),
        }
