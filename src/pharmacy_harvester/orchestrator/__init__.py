"""Run orchestration: state machine, concurrency, state tracking and reporting."""

from . import report
from .concurrency import BoundedPool, Deadline
from .harvest_orchestrator import HarvestOrchestrator, HarvestResult, HarvestState
from .state_manager import HARVEST_STAGES, StateManager

__all__ = [
    "BoundedPool",
    "Deadline",
    "HARVEST_STAGES",
    "HarvestOrchestrator",
    "HarvestResult",
    "HarvestState",
    "StateManager",
    "report",
]
