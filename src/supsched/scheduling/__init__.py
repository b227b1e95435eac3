"""Scheduling engine for generating supervision schedules."""

from supsched.scheduling.allocator import (
    AllocationOptions,
    AllocationResult,
    GreedyAllocator,
    LinearCongruentialRandom,
)
from supsched.scheduling.capacity import base_availability, free_time
from supsched.scheduling.consolidator import Consolidator
from supsched.scheduling.polisher import PolishOptions, Polisher
from supsched.scheduling.scheduler import Scheduler, UtilizationRow, allocate, polish
from supsched.scheduling.targets import TargetResolver, default_target_minutes

__all__ = [
    # Core scheduler
    "Scheduler",
    "UtilizationRow",
    "allocate",
    "polish",
    # Passes
    "GreedyAllocator",
    "Consolidator",
    "Polisher",
    "TargetResolver",
    # Configuration
    "AllocationOptions",
    "AllocationResult",
    "PolishOptions",
    "LinearCongruentialRandom",
    # Capacity
    "base_availability",
    "free_time",
    "default_target_minutes",
]
