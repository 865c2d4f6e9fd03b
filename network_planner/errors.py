"""
Error taxonomy for the network planner.

Only conditions that make a run meaningless are exceptions. Capacity
shortfall (unserved demand, service below target) is reported as data on
the YearResult / NetworkResult instead.
"""

from typing import Optional


class PlannerError(Exception):
    """Base class for every error the planner raises on purpose."""

    kind = "planner_error"

    def to_dict(self) -> dict:
        return {"type": self.kind, "message": str(self)}


class ConfigurationError(PlannerError):
    """Malformed input, rejected before any planning year is processed."""

    kind = "configuration_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(f"{field}: {message}" if field else message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class StructuralInfeasibility(PlannerError):
    """Positive demand in a year with no capacity-bearing facility and no way to add one."""

    kind = "structural_infeasibility"

    def __init__(self, message: str, year: Optional[int] = None):
        super().__init__(message)
        self.year = year

    def to_dict(self) -> dict:
        return {**super().to_dict(), "year": self.year}


class OptimizationCancelled(PlannerError):
    """Raised at a cancellation checkpoint (between years or between scenarios)."""

    kind = "cancelled"
