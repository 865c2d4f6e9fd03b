"""
Transportation cost functions: origin facility × destination → ($/unit, miles).

Two interchangeable models:
  - MatrixCostModel: $/unit read from an imported cost matrix. Distance is
    either given explicitly or derived as unit_cost / cost_per_mile, which is
    how the imported matrices are interpreted upstream.
  - GeoCostModel: great-circle distance between coordinates, priced flat,
    per mile, or per unit weight.

Both are deterministic and return (inf, inf) for a pair they know nothing
about, so such a route is never the cheapest and never within range.
"""

import math
from typing import Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from network_planner.errors import ConfigurationError


EARTH_RADIUS_MILES = 3958.8
COST_BASES = ("flat", "per_mile", "per_weight")
UNREACHABLE = (math.inf, math.inf)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two GPS points in miles."""
    phi1, phi2 = np.radians(lat1), np.radians(lat2)
    dphi = np.radians(lat2 - lat1)
    dlam = np.radians(lon2 - lon1)
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlam / 2) ** 2
    return float(2 * EARTH_RADIUS_MILES * np.arcsin(np.sqrt(a)))


class CostModel:
    """Interface: route(facility_id, destination) -> (unit_cost, distance_miles)."""

    def route(self, facility_id: str, destination: str) -> tuple:
        raise NotImplementedError

    def unit_cost(self, facility_id: str, destination: str) -> float:
        return self.route(facility_id, destination)[0]

    def distance(self, facility_id: str, destination: str) -> float:
        return self.route(facility_id, destination)[1]

    @property
    def destinations(self) -> list[str]:
        raise NotImplementedError


# ═══════════════════════════════════════════════════════════════════════════════
# COST MATRIX
# ═══════════════════════════════════════════════════════════════════════════════

class MatrixCostModel(CostModel):
    """Unit costs from an origin × destination matrix."""

    def __init__(self, costs: Mapping, cost_per_mile: float,
                 distances: Optional[Mapping] = None,
                 destinations: Optional[Iterable[str]] = None):
        self._costs = dict(costs)
        self._distances = dict(distances) if distances else {}
        self.cost_per_mile = cost_per_mile
        if destinations is None:
            destinations = dict.fromkeys(dest for _, dest in self._costs)
        self._destinations = list(destinations)

    @classmethod
    def from_matrix(cls, rows: list, cols: list, cost: list, cost_per_mile: float,
                    distance: Optional[list] = None) -> "MatrixCostModel":
        """Build from the {rows, cols, cost[][]} shape the import pipeline produces."""
        frame = _validate_matrix(rows, cols, cost, "costMatrix.cost")
        costs = {(r, c): float(frame.at[r, c]) for r in frame.index for c in frame.columns}
        distances = None
        if distance is not None:
            dist_frame = _validate_matrix(rows, cols, distance, "costMatrix.distance")
            distances = {(r, c): float(dist_frame.at[r, c])
                         for r in dist_frame.index for c in dist_frame.columns}
        return cls(costs, cost_per_mile, distances, destinations=list(cols))

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, cost_per_mile: float) -> "MatrixCostModel":
        """Build from a long table: facility_id, destination, unit_cost[, distance]."""
        required = {"facility_id", "destination", "unit_cost"}
        missing = required - set(frame.columns)
        if missing:
            raise ConfigurationError(f"missing columns {sorted(missing)}", "cost_matrix")
        if frame.duplicated(subset=["facility_id", "destination"]).any():
            raise ConfigurationError("duplicate (facility_id, destination) rows", "cost_matrix")
        if frame["unit_cost"].isna().any() or (frame["unit_cost"] < 0).any():
            raise ConfigurationError("unit_cost must be a non-negative number", "cost_matrix.unit_cost")
        keys = list(zip(frame["facility_id"].astype(str), frame["destination"].astype(str)))
        costs = dict(zip(keys, frame["unit_cost"].astype(float)))
        distances = None
        if "distance" in frame.columns:
            distances = dict(zip(keys, frame["distance"].astype(float)))
        return cls(costs, cost_per_mile, distances)

    @property
    def destinations(self) -> list[str]:
        return list(self._destinations)

    @property
    def origins(self) -> list[str]:
        return list(dict.fromkeys(origin for origin, _ in self._costs))

    def route(self, facility_id: str, destination: str) -> tuple:
        cost = self._costs.get((facility_id, destination))
        if cost is None:
            return UNREACHABLE
        distance = self._distances.get((facility_id, destination))
        if distance is None:
            distance = cost / self.cost_per_mile if self.cost_per_mile > 0 else cost
        return cost, distance


def _validate_matrix(rows: list, cols: list, values: list, path: str) -> pd.DataFrame:
    if not isinstance(rows, (list, tuple)) or not isinstance(cols, (list, tuple)):
        raise ConfigurationError("rows and cols must be lists", path)
    if len(set(rows)) != len(rows):
        raise ConfigurationError("duplicate row (facility) names", path)
    if len(set(cols)) != len(cols):
        raise ConfigurationError("duplicate column (destination) names", path)
    if not isinstance(values, (list, tuple)) or len(values) != len(rows):
        raise ConfigurationError(
            f"expected {len(rows)} rows to match costMatrix.rows, got "
            f"{len(values) if isinstance(values, (list, tuple)) else type(values).__name__}", path)
    for i, row in enumerate(values):
        if not isinstance(row, (list, tuple)) or len(row) != len(cols):
            raise ConfigurationError(f"row {i} must have {len(cols)} entries to match costMatrix.cols",
                                     path)
        for j, value in enumerate(row):
            if isinstance(value, bool) or not isinstance(value, (int, float)) \
                    or math.isnan(value) or value < 0:
                raise ConfigurationError(f"entry [{i}][{j}] must be a non-negative number, "
                                         f"got {value!r}", path)
    return pd.DataFrame(values, index=list(rows), columns=list(cols), dtype=float)


# ═══════════════════════════════════════════════════════════════════════════════
# COORDINATE-BASED COSTS
# ═══════════════════════════════════════════════════════════════════════════════

class GeoCostModel(CostModel):
    """Haversine distance between coordinates, priced by one of COST_BASES.

    flat       -> rate per unit, distance-independent
    per_mile   -> rate × miles per unit
    per_weight -> rate × weight_per_unit per unit
    """

    def __init__(self, facility_locations: Mapping, destination_locations: Mapping,
                 basis: str = "per_mile", rate: float = 2.85, weight_per_unit: float = 1.0,
                 circuity_factor: float = 1.0):
        if basis not in COST_BASES:
            raise ConfigurationError(f"must be one of {', '.join(COST_BASES)}", "cost.basis")
        if rate < 0 or weight_per_unit < 0 or circuity_factor <= 0:
            raise ConfigurationError("rate, weight and circuity must be positive", "cost")
        self._facilities = dict(facility_locations)
        self._destination_locations = dict(destination_locations)
        self.basis = basis
        self.rate = rate
        self.weight_per_unit = weight_per_unit
        self.circuity_factor = circuity_factor
        self._routes = {(fid, dest): self._price(fid, dest)
                        for fid in self._facilities for dest in self._destination_locations}

    @property
    def destinations(self) -> list[str]:
        return list(self._destination_locations)

    def route(self, facility_id: str, destination: str) -> tuple:
        return self._routes.get((facility_id, destination), UNREACHABLE)

    def _price(self, facility_id: str, destination: str) -> tuple:
        origin = self._facilities.get(facility_id)
        target = self._destination_locations.get(destination)
        if origin is None or target is None:
            return UNREACHABLE
        miles = haversine_miles(origin[0], origin[1], target[0], target[1]) * self.circuity_factor
        if self.basis == "flat":
            cost = self.rate
        elif self.basis == "per_mile":
            cost = self.rate * miles
        else:
            cost = self.rate * self.weight_per_unit
        return cost, miles
