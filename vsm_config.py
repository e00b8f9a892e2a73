# vsm_config.py
# Run configuration for the VSM flow simulation.
# Values come from a YAML file (VSM_SIM_CONFIG env var or ./vsm_sim.yaml); keys must
# match the SimulationConfig attribute names.

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import logging
import os

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VSM_SIM_CONFIG"
DEFAULT_CONFIG_PATH = "vsm_sim.yaml"

MIN_SPEED = 0.25
MAX_SPEED = 4.0
DEFAULT_MAX_TICKS = 10000


def clamp_speed(speed: float) -> float:
    """Out-of-range speeds are corrected, not rejected."""
    return min(MAX_SPEED, max(MIN_SPEED, float(speed)))


@dataclass
class SimulationConfig:
    work_item_count: int = 10
    speed: float = 1.0
    max_ticks: int = DEFAULT_MAX_TICKS
    seed: Optional[int] = None

    def __post_init__(self):
        self.work_item_count = max(0, int(self.work_item_count))
        self.speed = clamp_speed(self.speed)
        self.max_ticks = int(self.max_ticks)


def load_config(path: Optional[str] = None) -> SimulationConfig:
    """Load SimulationConfig from YAML.

    Args:
        path: Optional path to config file. Falls back to the VSM_SIM_CONFIG env
            variable or 'vsm_sim.yaml' in the current directory.
    """
    config_path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    if not os.path.exists(config_path):
        logger.debug("No simulation config at %s; using defaults.", config_path)
        return SimulationConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return SimulationConfig(**data)
