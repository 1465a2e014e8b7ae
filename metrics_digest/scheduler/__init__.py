"""Scheduler module for running collection cycles."""

from .coordinator import CollectionCoordinator, CycleReport, UnitOutcome
from .driver import DigestDriver

__all__ = ["CollectionCoordinator", "CycleReport", "UnitOutcome", "DigestDriver"]
