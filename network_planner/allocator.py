"""
Year-Slice Allocator — assigns one year's destination demand to open facilities.

Given a fixed set of capacity-bearing facilities and a fixed demand vector,
solves the transportation sub-problem greedily:

  1. Destinations are processed largest volume first (ties by name), which
     keeps big destinations from being fragmented across many facilities.
  2. Each destination takes capacity from the cheapest facility (unit cost,
     ties by facility id) that is within max_distance_miles, repeatedly,
     until its volume is placed or no in-range capacity is left.
  3. Whatever remains goes to the cheapest facility with capacity at any
     distance. Those assignments are flagged as outside the service level.
  4. Whatever still remains is recorded as unserved. Shortfall never raises.

The allocator never mutates facility state; it reads a capacity snapshot.
Identical inputs produce identical assignment lists, in the same order.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from network_planner.costs import CostModel


# Volumes below this are treated as zero when deciding whether to keep assigning.
EPSILON = 1e-9


@dataclass(frozen=True)
class Assignment:
    destination: str
    facility_id: str
    year: Optional[int]
    volume_assigned: float
    distance: float
    unit_cost: float
    within_service_level: bool = True

    @property
    def cost(self) -> float:
        return self.volume_assigned * self.unit_cost


@dataclass(frozen=True)
class FacilityMetrics:
    facility_id: str
    demand: float
    capacity: float
    utilization: float
    avg_distance: float
    cost: float
    destinations_served: int

    @property
    def cost_per_unit(self) -> float:
        return self.cost / self.demand if self.demand > 0 else 0.0


@dataclass
class AllocationResult:
    """Container for one allocator run."""
    assignments: list = field(default_factory=list)
    facility_metrics: dict = field(default_factory=dict)   # facility_id -> FacilityMetrics
    unserved: dict = field(default_factory=dict)           # destination -> volume
    demand_total: float = 0.0
    demand_served: float = 0.0
    demand_within_service: float = 0.0
    transportation_cost: float = 0.0
    total_capacity: float = 0.0
    no_open_facilities: bool = False

    @property
    def unserved_demand(self) -> float:
        return sum(self.unserved.values())

    @property
    def service_level(self) -> float:
        """Share of total demand served within the max distance (1.0 if no demand)."""
        if self.demand_total <= 0:
            return 1.0
        return self.demand_within_service / self.demand_total

    @property
    def network_utilization(self) -> float:
        if self.total_capacity <= 0:
            return 0.0
        return min(1.0, self.demand_served / self.total_capacity)

    @property
    def totals(self) -> dict:
        return {
            "transportation_cost": self.transportation_cost,
            "demand_total": self.demand_total,
            "demand_served": self.demand_served,
            "unserved_demand": self.unserved_demand,
            "demand_within_service": self.demand_within_service,
            "service_level": self.service_level,
            "network_utilization": self.network_utilization,
            "total_capacity": self.total_capacity,
            "no_open_facilities": self.no_open_facilities,
        }


def allocate(
    capacities: Mapping[str, float],
    demand: Mapping[str, float],
    cost_model: CostModel,
    max_distance_miles: float,
    year: Optional[int] = None,
) -> AllocationResult:
    """
    Assign demand to open facilities by greedy nearest-feasible allocation.

    Args:
        capacities: facility_id -> active capacity for this year (including
            applied expansion tiers). Zero-capacity entries are ignored.
        demand: destination -> volume (>= 0).
        cost_model: deterministic (unit_cost, distance) per facility/destination.
        max_distance_miles: service radius; assignments beyond it are still
            made when in-range capacity runs out, but flagged.
        year: stamped on each Assignment.

    Returns:
        AllocationResult. Assigned + unserved volume equals total demand.
    """
    facility_ids = sorted(fid for fid, cap in capacities.items() if cap > 0)
    remaining = {fid: float(capacities[fid]) for fid in facility_ids}

    result = AllocationResult(
        demand_total=float(sum(demand.values())),
        total_capacity=float(sum(remaining.values())),
        no_open_facilities=not facility_ids,
    )

    # Largest destinations first; name breaks ties so order is reproducible.
    ordered = sorted(demand.items(), key=lambda item: (-item[1], item[0]))

    for destination, volume in ordered:
        left = float(volume)
        if left <= 0:
            continue

        # Routes sorted once per destination: (unit_cost, facility_id, distance)
        routes = sorted(
            (cost, fid, dist)
            for fid in facility_ids
            for cost, dist in [cost_model.route(fid, destination)]
        )

        # ── Pass 1: in-range facilities, cheapest first ───────────────────
        for cost, fid, dist in routes:
            if left <= EPSILON:
                break
            if dist > max_distance_miles or remaining[fid] <= EPSILON:
                continue
            left = _assign(result, remaining, destination, fid, year, left, cost, dist, True)

        # ── Pass 2: any facility with capacity, flagged out of range ──────
        for cost, fid, dist in routes:
            if left <= EPSILON:
                break
            if remaining[fid] <= EPSILON or cost == float("inf"):
                continue
            left = _assign(result, remaining, destination, fid, year, left, cost, dist, False)

        if left > 0:
            result.unserved[destination] = left

    result.facility_metrics = _facility_metrics(result.assignments, capacities, facility_ids)
    return result


def _assign(result, remaining, destination, fid, year, left, cost, dist, in_range) -> float:
    amount = min(left, remaining[fid])
    remaining[fid] -= amount
    result.assignments.append(Assignment(
        destination=destination,
        facility_id=fid,
        year=year,
        volume_assigned=amount,
        distance=dist,
        unit_cost=cost,
        within_service_level=in_range,
    ))
    result.demand_served += amount
    result.transportation_cost += amount * cost
    if in_range:
        result.demand_within_service += amount
    return left - amount


def _facility_metrics(assignments, capacities, facility_ids) -> dict:
    """Per-facility demand, utilization, volume-weighted distance and cost."""
    metrics = {}
    for fid in facility_ids:
        served = [a for a in assignments if a.facility_id == fid]
        volume = sum(a.volume_assigned for a in served)
        capacity = float(capacities[fid])
        metrics[fid] = FacilityMetrics(
            facility_id=fid,
            demand=volume,
            capacity=capacity,
            utilization=min(1.0, volume / capacity) if capacity > 0 else 0.0,
            avg_distance=(sum(a.distance * a.volume_assigned for a in served) / volume
                          if volume > 0 else 0.0),
            cost=sum(a.cost for a in served),
            destinations_served=len({a.destination for a in served}),
        )
    return metrics


def summarize_assignments(
    assignments: list,
    capacities: Mapping[str, float],
    demand: Mapping[str, float],
) -> AllocationResult:
    """Rebuild an AllocationResult from assignments produced elsewhere (e.g. the MILP)."""
    facility_ids = sorted(fid for fid, cap in capacities.items() if cap > 0)
    result = AllocationResult(
        assignments=list(assignments),
        demand_total=float(sum(demand.values())),
        total_capacity=float(sum(capacities[fid] for fid in facility_ids)),
        no_open_facilities=not facility_ids,
    )
    placed: dict = {}
    for a in assignments:
        placed[a.destination] = placed.get(a.destination, 0.0) + a.volume_assigned
        result.demand_served += a.volume_assigned
        result.transportation_cost += a.cost
        if a.within_service_level:
            result.demand_within_service += a.volume_assigned
    for destination, volume in demand.items():
        left = float(volume) - placed.get(destination, 0.0)
        if left > EPSILON:
            result.unserved[destination] = left
    result.facility_metrics = _facility_metrics(result.assignments, capacities, facility_ids)
    return result
