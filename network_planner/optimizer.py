"""
Rolling-Lease Network Optimizer — year-by-year open / expand / close decisions.

Walks the planning years in order, carrying a FacilityYearState per site:

    closed → opening → open → (expanding | open) → closing-eligible → closed

Each year:
  1. snapshot the leased sites and their active capacity
  2. run the allocator against this year's demand
  3. while the network is over the utilization ceiling or leaves demand
     unserved, take the cheapest capacity action (cost per unit of capacity
     added; ties by facility id): expand an open site by one tier if that is
     strictly cheaper than opening the best closed site, otherwise open it
  4. if the network is under-utilized, close lease-eligible sites, highest
     cost per unit capacity first, as long as a second allocator run shows
     the smaller network still serves what it served before, in this year
     and in every year an opening lag keeps a replacement from arriving
  5. finalize the YearResult (transport + lease/tier cost, discounted)
  6. advance every site's lease clock into the next year

A site opened in year Y stays leased through year Y + lease_years - 1.
Closing is advisory: it never takes the network below feasibility, the
required facility count, or a mandatory site.

Shortfall (unserved demand, service level below target) is data on the
result, not an error. Positive demand with no capacity at all and no way to
add any raises StructuralInfeasibility.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional

import pandas as pd

from network_planner.allocator import EPSILON, AllocationResult, FacilityMetrics, allocate
from network_planner.config import PlannerConfig
from network_planner.costs import CostModel
from network_planner.coverage_graph import CoverageGraph
from network_planner.errors import (
    ConfigurationError,
    OptimizationCancelled,
    StructuralInfeasibility,
)
from network_planner.ontology import CandidateRegistry

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# STATE AND RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

class FacilityStatus(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    EXPANDING = "expanding"


@dataclass(frozen=True)
class FacilityYearState:
    """One site's lease and capacity position in one planning year."""
    facility_id: str
    year: int
    status: FacilityStatus
    active_capacity: float
    lease_opened_year: Optional[int]
    lease_years_committed: int
    tiers_applied: int = 0
    capacity_available_year: Optional[int] = None

    @property
    def is_leased(self) -> bool:
        return self.status != FacilityStatus.CLOSED

    def lease_age(self, year: Optional[int] = None) -> Optional[int]:
        if self.lease_opened_year is None:
            return None
        return (self.year if year is None else year) - self.lease_opened_year

    def is_lease_locked(self, year: Optional[int] = None) -> bool:
        """True while the minimum lease commitment forbids closing."""
        if not self.is_leased:
            return False
        return self.lease_age(year) < self.lease_years_committed

    def to_dict(self) -> dict:
        return {
            "facility_id": self.facility_id,
            "year": self.year,
            "status": self.status.value,
            "active_capacity": self.active_capacity,
            "lease_opened_year": self.lease_opened_year,
            "lease_years_committed": self.lease_years_committed,
            "tiers_applied": self.tiers_applied,
        }


@dataclass(frozen=True)
class YearResult:
    """Finalized outcome of one planning year. Never modified afterwards."""
    year: int
    open_facilities: tuple
    assignments: tuple
    facility_metrics: dict          # facility_id -> FacilityMetrics
    facility_states: dict           # facility_id -> FacilityYearState (every site)
    unserved: dict                  # destination -> volume
    events: tuple                   # decisions taken this year, in order
    totals: dict

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "open_facilities": list(self.open_facilities),
            "assignments": [
                {
                    "destination": a.destination,
                    "facility_id": a.facility_id,
                    "year": a.year,
                    "volume_assigned": a.volume_assigned,
                    "distance": a.distance,
                    "unit_cost": a.unit_cost,
                    "within_service_level": a.within_service_level,
                }
                for a in self.assignments
            ],
            "facility_metrics": [
                {
                    "facility_id": m.facility_id,
                    "demand": m.demand,
                    "capacity": m.capacity,
                    "utilization": m.utilization,
                    "avg_distance": m.avg_distance,
                    "cost": m.cost,
                    "cost_per_unit": m.cost_per_unit,
                    "destinations_served": m.destinations_served,
                }
                for m in self.facility_metrics.values()
            ],
            "facility_states": [s.to_dict() for s in self.facility_states.values()],
            "unserved": dict(self.unserved),
            "events": [dict(e) for e in self.events],
            "totals": dict(self.totals),
        }


@dataclass
class NetworkResult:
    """Per-year results of one optimization run plus horizon totals."""
    per_year: list = field(default_factory=list)
    open_by_year: dict = field(default_factory=dict)
    totals: dict = field(default_factory=dict)
    mode: str = "rolling_lease"
    warnings: list = field(default_factory=list)

    def year(self, year: int) -> YearResult:
        for yr in self.per_year:
            if yr.year == year:
                return yr
        raise KeyError(year)

    def to_frame(self) -> pd.DataFrame:
        """One row per year with the headline cost / service columns."""
        rows = []
        for yr in self.per_year:
            rows.append({
                "year": yr.year,
                "facilities_open": len(yr.open_facilities),
                **{k: v for k, v in yr.totals.items() if k != "no_open_facilities"},
            })
        return pd.DataFrame(rows)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "perYear": [yr.to_dict() for yr in self.per_year],
            "openByYear": {str(y): list(ids) for y, ids in self.open_by_year.items()},
            "totals": dict(self.totals),
            "warnings": list(self.warnings),
        }


def summarize_years(per_year: list, mode: str, warnings: list) -> NetworkResult:
    """Aggregate finalized YearResults into a NetworkResult."""
    demand_total = sum(yr.totals["demand_total"] for yr in per_year)
    served = sum(yr.totals["demand_served"] for yr in per_year)
    within = sum(yr.totals["demand_within_service"] for yr in per_year)
    transport = sum(yr.totals["transportation_cost"] for yr in per_year)
    warehouse = sum(yr.totals["warehouse_cost"] for yr in per_year)
    used = sorted({fid for yr in per_year for fid in yr.open_facilities})

    totals = {
        "total_transportation_cost": transport,
        "total_warehouse_cost": warehouse,
        "total_network_cost_all_years": transport + warehouse,
        "discounted_network_cost": sum(yr.totals["discounted_cost"] for yr in per_year),
        "total_demand": demand_total,
        "total_demand_served": served,
        "total_unserved_demand": sum(yr.totals["unserved_demand"] for yr in per_year),
        "weighted_service_level": within / demand_total if demand_total > 0 else 1.0,
        "avg_cost_per_unit": (transport + warehouse) / served if served > 0 else 0.0,
        "avg_utilization": (sum(yr.totals["network_utilization"] for yr in per_year) / len(per_year)
                            if per_year else 0.0),
        "facilities_used": used,
        "facilities_opened": len(used),
        "peak_open_facilities": max((len(yr.open_facilities) for yr in per_year), default=0),
    }
    return NetworkResult(
        per_year=list(per_year),
        open_by_year={yr.year: list(yr.open_facilities) for yr in per_year},
        totals=totals,
        mode=mode,
        warnings=list(warnings),
    )


def validate_demand(demand_by_year: Mapping, cost_model: CostModel) -> list[int]:
    """Reject empty horizons, negative volumes and destinations without routes."""
    if not demand_by_year:
        raise ConfigurationError("at least one planning year is required", "forecast")
    destinations = set(cost_model.destinations)
    for year, demand in demand_by_year.items():
        if isinstance(year, bool) or not isinstance(year, int):
            raise ConfigurationError(f"year must be an integer, got {year!r}", "forecast.year")
        for destination, volume in demand.items():
            if volume is None or volume != volume or volume < 0:
                raise ConfigurationError(f"volume must be >= 0, got {volume!r}",
                                         f"demand[{year}].{destination}")
            if destination not in destinations:
                raise ConfigurationError("destination missing from cost matrix",
                                         f"demand[{year}].{destination}")
    return sorted(demand_by_year)


# ═══════════════════════════════════════════════════════════════════════════════
# OPTIMIZER
# ═══════════════════════════════════════════════════════════════════════════════

class RollingLeaseOptimizer:
    """Holds the mutable lease state of a single optimization run."""

    def __init__(self, registry: CandidateRegistry, demand_by_year: Mapping,
                 cost_model: CostModel, config: PlannerConfig, cancel_event=None):
        self.registry = registry
        self.demand_by_year = {y: dict(d) for y, d in demand_by_year.items()}
        self.cost_model = cost_model
        self.config = config
        self.transport = config.transportation
        self.cancel_event = cancel_event

        self.years = validate_demand(self.demand_by_year, cost_model)
        self._validate_registry()

        self._states: dict[str, FacilityYearState] = {}
        self._previous: dict[str, FacilityYearState] = {}
        self._warnings: list[str] = []

    def _validate_registry(self):
        for fid in self.transport.mandatory_facilities:
            if fid not in self.registry:
                raise ConfigurationError(f"mandatory facility {fid!r} is not a candidate site",
                                         "transportation.mandatory_facilities")
        if len(self.registry.existing()) > self.transport.max_facilities:
            raise ConfigurationError(
                f"{len(self.registry.existing())} existing facilities exceed "
                f"max_facilities ({self.transport.max_facilities})",
                "transportation.max_facilities")

    # ── Run ───────────────────────────────────────────────────────────────────

    def run(self) -> NetworkResult:
        logger.info("Rolling-lease optimization: %d sites, years %s-%s, lease %d yrs",
                    len(self.registry), self.years[0], self.years[-1], self.transport.lease_years)
        per_year = []
        for index, year in enumerate(self.years):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise OptimizationCancelled(f"cancelled before year {year}")

            events: list[dict] = []
            if index == 0:
                self._initialize(year, events)

            demand = self.demand_by_year[year]
            allocation = self._relieve_pressure(year, demand, events, first_year=index == 0)
            if self.transport.opening_lag_years > 0:
                self._plan_openings_ahead(year, events)
                allocation = self._allocate(year, demand)

            if allocation.demand_total > EPSILON and allocation.total_capacity <= 0:
                raise StructuralInfeasibility(
                    f"year {year}: {allocation.demand_total:,.0f} units of demand but no "
                    f"facility with capacity can be leased", year=year)

            allocation = self._try_closures(year, demand, allocation, events)
            per_year.append(self._finalize(year, index, allocation, events))

            if index + 1 < len(self.years):
                self._advance(self.years[index + 1])

        result = summarize_years(per_year, "rolling_lease", self._warnings)
        logger.info("Optimization finished: total cost %.2f, service level %.3f, %d sites used",
                    result.totals["total_network_cost_all_years"],
                    result.totals["weighted_service_level"],
                    result.totals["facilities_opened"])
        return result

    # ── Year 1: existing, mandatory and initial network ──────────────────────

    def _initialize(self, year: int, events: list):
        lease = self.transport.lease_years
        for facility in self.registry:
            self._states[facility.facility_id] = FacilityYearState(
                facility_id=facility.facility_id, year=year, status=FacilityStatus.CLOSED,
                active_capacity=0.0, lease_opened_year=None, lease_years_committed=lease)

        for facility in self.registry.existing():
            self._states[facility.facility_id] = FacilityYearState(
                facility_id=facility.facility_id, year=year, status=FacilityStatus.OPEN,
                active_capacity=facility.base_capacity,
                lease_opened_year=facility.lease_start_year if facility.lease_start_year is not None
                else year,
                lease_years_committed=lease,
                capacity_available_year=year)

        for fid in self.transport.mandatory_facilities:
            if not self._states[fid].is_leased:
                self._open(fid, year, events, "mandatory", immediate=True)

        target = min(self.transport.initial_network_size, self.transport.max_facilities)
        if self._leased_count() < target:
            demand = self.demand_by_year[year]
            graph = CoverageGraph(self.registry, demand, self.cost_model,
                                  self.transport.max_distance_miles)
            closed = [f.facility_id for f in self.registry
                      if not self._states[f.facility_id].is_leased and f.base_capacity > 0]
            order = graph.greedy_cover_order(
                closed,
                tie_break={fid: self._opening_cost_per_unit(fid) for fid in closed},
                already_open=self._leased_ids(),
            )
            for fid in order[:target - self._leased_count()]:
                self._open(fid, year, events, "initial_network", immediate=True)

    # ── Capacity pressure: openings and expansions ───────────────────────────

    def _relieve_pressure(self, year: int, demand: dict, events: list,
                          first_year: bool = False) -> AllocationResult:
        # Year 1 cannot have been planned ahead, so its openings carry capacity
        # at once, like the initial network.
        allow_openings = self.transport.opening_lag_years == 0 or first_year
        while True:
            allocation = self._allocate(year, demand)
            if not self._breached(allocation):
                return allocation
            action = self._best_capacity_action(self._states, allow_openings,
                                                expandable=self._expandable_now)
            if action is None:
                return allocation
            _, fid, kind = action
            if kind == "expand":
                self._expand(fid, year, events, allocation)
            else:
                self._open(fid, year, events, "capacity", immediate=first_year,
                           allocation=allocation)

    def _plan_openings_ahead(self, year: int, events: list):
        """With an opening lag, lease sites now for the demand of year + lag.

        Expansions are simulated on a copy of the state (they can be taken
        in the target year itself); only openings are committed now.
        """
        target = next((y for y in self.years if y >= year + self.transport.opening_lag_years), None)
        if target is None or target == year:
            return
        demand = self.demand_by_year[target]
        virtual = dict(self._states)
        while True:
            capacities = {fid: self._projected_capacity(s) for fid, s in virtual.items()
                          if s.is_leased}
            projected = allocate(capacities, demand, self.cost_model,
                                 self.transport.max_distance_miles, year=target)
            if not self._breached(projected):
                return
            action = self._best_capacity_action(virtual, allow_openings=True,
                                                expandable=lambda s: s.is_leased)
            if action is None:
                return
            _, fid, kind = action
            if kind == "expand":
                state = virtual[fid]
                virtual[fid] = replace(state, tiers_applied=state.tiers_applied + 1)
            else:
                self._open(fid, year, events, f"projected_{target}", allocation=projected)
                virtual[fid] = self._states[fid]

    def _best_capacity_action(self, states: dict, allow_openings: bool, expandable):
        """Cheapest (cost per unit capacity, facility_id, kind) action, or None."""
        openings = []
        if self._leased_count(states) < self.transport.max_facilities:
            for facility in self.registry:
                state = states[facility.facility_id]
                if not state.is_leased and facility.base_capacity > 0:
                    openings.append((self._opening_cost_per_unit(facility.facility_id),
                                     facility.facility_id, "open"))
        best_opening = min((o[0] for o in openings), default=float("inf"))

        options = []
        for facility in self.registry:
            state = states[facility.facility_id]
            tier = facility.next_tier(state.tiers_applied)
            if tier is None or not expandable(state):
                continue
            # Only worth it when strictly cheaper than a new site for the same capacity.
            if tier.cost_per_unit_capacity < best_opening:
                options.append((tier.cost_per_unit_capacity, facility.facility_id, "expand"))
        if allow_openings:
            options.extend(openings)
        return min(options) if options else None

    def _expandable_now(self, state: FacilityYearState) -> bool:
        """Open last year at the same capacity and not already expanded this year."""
        if state.status != FacilityStatus.OPEN:
            return False
        previous = self._previous.get(state.facility_id)
        return previous is None or previous.active_capacity == state.active_capacity

    def _breached(self, allocation: AllocationResult) -> bool:
        return (allocation.unserved_demand > EPSILON
                or allocation.network_utilization > self.transport.max_utilization)

    # ── Over-provisioning: closures ───────────────────────────────────────────

    def _try_closures(self, year: int, demand: dict, allocation: AllocationResult,
                      events: list) -> AllocationResult:
        mandatory = set(self.transport.mandatory_facilities)
        while (allocation.network_utilization < self.transport.min_utilization
               and self._leased_count() - 1 >= self.transport.required_facilities):
            candidates = []
            for fid, state in self._states.items():
                if state.status not in (FacilityStatus.OPEN, FacilityStatus.EXPANDING):
                    continue
                if fid in mandatory or not self.registry.get(fid).closable:
                    continue
                if state.is_lease_locked(year):
                    continue
                candidates.append((-self._active_cost_per_unit(state), fid))
            if not candidates:
                return allocation

            closed_one = False
            for _, fid in sorted(candidates):
                capacities = {f: s.active_capacity for f, s in self._states.items()
                              if s.is_leased and f != fid}
                trial = allocate(capacities, demand, self.cost_model,
                                 self.transport.max_distance_miles, year=year)
                if (self._closure_is_feasible(allocation, trial)
                        and self._closure_holds_through_lag(year, fid)):
                    self._close(fid, year, events, allocation)
                    allocation = trial
                    closed_one = True
                    break
            if not closed_one:
                return allocation
        return allocation

    def _closure_is_feasible(self, current: AllocationResult, trial: AllocationResult) -> bool:
        service_floor = min(self.transport.service_level_requirement, current.service_level)
        return (trial.unserved_demand <= current.unserved_demand + EPSILON
                and trial.network_utilization <= self.transport.max_utilization
                and trial.service_level >= service_floor - EPSILON)

    def _closure_holds_through_lag(self, year: int, fid: str) -> bool:
        """A site closed now can only be replaced from year + 1 + lag onwards.

        Every horizon year before that must be served by the remaining network
        without adding unserved demand.
        """
        lag = self.transport.opening_lag_years
        for later in (y for y in self.years if year < y <= year + lag):
            demand = self.demand_by_year[later]
            with_site = self._projected_allocation(self._states, later, demand)
            without = self._projected_allocation(
                {f: s for f, s in self._states.items() if f != fid}, later, demand)
            if without.unserved_demand > with_site.unserved_demand + EPSILON:
                logger.debug("Year %d: keep %s, closing it leaves %.0f units unserved in %d",
                             year, fid, without.unserved_demand, later)
                return False
        return True

    def _projected_allocation(self, states: dict, year: int, demand: dict) -> AllocationResult:
        capacities = {}
        for fid, state in states.items():
            if not state.is_leased:
                continue
            available = state.capacity_available_year
            capacities[fid] = (0.0 if available is not None and year < available
                               else self._projected_capacity(state))
        return allocate(capacities, demand, self.cost_model,
                        self.transport.max_distance_miles, year=year)

    # ── State transitions ─────────────────────────────────────────────────────

    def _open(self, fid: str, year: int, events: list, reason: str,
              immediate: bool = False, allocation: Optional[AllocationResult] = None):
        facility = self.registry.get(fid)
        lag = 0 if immediate else self.transport.opening_lag_years
        self._states[fid] = FacilityYearState(
            facility_id=fid, year=year, status=FacilityStatus.OPENING,
            active_capacity=facility.base_capacity if lag == 0 else 0.0,
            lease_opened_year=year,
            lease_years_committed=self.transport.lease_years,
            capacity_available_year=year + lag,
        )
        events.append(self._event(fid, "open", reason, allocation,
                                  capacity_added=facility.base_capacity,
                                  available_year=year + lag,
                                  annual_fixed_cost=self.registry.annual_fixed_cost(
                                      fid, self.transport.fixed_cost_per_facility)))
        logger.debug("Year %d: open %s (%s)", year, fid, reason)

    def _expand(self, fid: str, year: int, events: list, allocation: AllocationResult):
        facility = self.registry.get(fid)
        state = self._states[fid]
        tier = facility.next_tier(state.tiers_applied)
        self._states[fid] = replace(
            state,
            status=FacilityStatus.EXPANDING,
            tiers_applied=state.tiers_applied + 1,
            active_capacity=state.active_capacity + tier.capacity_increment,
        )
        events.append(self._event(fid, "expand", "capacity", allocation,
                                  tier=tier.name, capacity_added=tier.capacity_increment))
        logger.debug("Year %d: expand %s with tier %s (+%.0f)", year, fid, tier.name,
                     tier.capacity_increment)

    def _close(self, fid: str, year: int, events: list, allocation: AllocationResult):
        state = self._states[fid]
        self._states[fid] = replace(state, status=FacilityStatus.CLOSED, active_capacity=0.0,
                                    lease_opened_year=None, tiers_applied=0,
                                    capacity_available_year=None)
        events.append(self._event(fid, "close", "over_provisioned", allocation,
                                  lease_age=state.lease_age(year)))
        logger.debug("Year %d: close %s after %d lease years", year, fid, state.lease_age(year))

    def _advance(self, next_year: int):
        """Year-advance step: roll every lease clock forward one planning year."""
        self._previous = dict(self._states)
        advanced = {}
        for fid, state in self._states.items():
            if not state.is_leased:
                advanced[fid] = replace(state, year=next_year)
                continue
            facility = self.registry.get(fid)
            available = state.capacity_available_year is None \
                or next_year >= state.capacity_available_year
            if state.status == FacilityStatus.OPENING and not available:
                advanced[fid] = replace(state, year=next_year)
            else:
                advanced[fid] = replace(
                    state, year=next_year, status=FacilityStatus.OPEN,
                    active_capacity=facility.capacity_with_tiers(state.tiers_applied))
        self._states = advanced

    # ── Finalize ──────────────────────────────────────────────────────────────

    def _finalize(self, year: int, index: int, allocation: AllocationResult,
                  events: list) -> YearResult:
        leased = self._leased_ids()
        warehouse_cost = sum(
            self.registry.annual_fixed_cost(fid, self.transport.fixed_cost_per_facility,
                                            self._states[fid].tiers_applied)
            for fid in leased)
        total_cost = warehouse_cost + allocation.transportation_cost
        discount = (1 + self.config.finance.discount_rate) ** (index + 1)

        metrics = dict(allocation.facility_metrics)
        for fid in leased:
            if fid not in metrics:
                metrics[fid] = FacilityMetrics(fid, 0.0, self._states[fid].active_capacity,
                                               0.0, 0.0, 0.0, 0)

        totals = {
            **allocation.totals,
            "warehouse_cost": warehouse_cost,
            "total_cost": total_cost,
            "discounted_cost": total_cost / discount,
        }
        self._record_degradation(year, allocation)
        return YearResult(
            year=year,
            open_facilities=tuple(leased),
            assignments=tuple(allocation.assignments),
            facility_metrics=dict(sorted(metrics.items())),
            facility_states=dict(self._states),
            unserved=dict(allocation.unserved),
            events=tuple(events),
            totals=totals,
        )

    def _record_degradation(self, year: int, allocation: AllocationResult):
        requirement = self.transport.service_level_requirement
        if allocation.unserved_demand > EPSILON:
            message = (f"year {year}: {allocation.unserved_demand:,.0f} units unserved "
                       f"(capacity shortfall)")
            self._warnings.append(message)
            logger.warning(message)
        if allocation.demand_total > 0 and allocation.service_level < requirement - EPSILON:
            message = (f"year {year}: service level {allocation.service_level:.3f} "
                       f"below requirement {requirement:.3f}")
            self._warnings.append(message)
            logger.warning(message)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _allocate(self, year: int, demand: dict) -> AllocationResult:
        capacities = {fid: s.active_capacity for fid, s in self._states.items() if s.is_leased}
        return allocate(capacities, demand, self.cost_model,
                        self.transport.max_distance_miles, year=year)

    def _leased_ids(self) -> list[str]:
        return sorted(fid for fid, s in self._states.items() if s.is_leased)

    def _leased_count(self, states: Optional[dict] = None) -> int:
        states = self._states if states is None else states
        return sum(1 for s in states.values() if s.is_leased)

    def _projected_capacity(self, state: FacilityYearState) -> float:
        return self.registry.get(state.facility_id).capacity_with_tiers(state.tiers_applied)

    def _opening_cost_per_unit(self, fid: str) -> float:
        return self.registry.cost_per_unit_capacity(fid, self.transport.fixed_cost_per_facility)

    def _active_cost_per_unit(self, state: FacilityYearState) -> float:
        if state.active_capacity <= 0:
            return float("inf")
        cost = self.registry.annual_fixed_cost(state.facility_id,
                                               self.transport.fixed_cost_per_facility,
                                               state.tiers_applied)
        return cost / state.active_capacity

    @staticmethod
    def _event(fid, action, reason, allocation=None, **details) -> dict:
        event = {"facility_id": fid, "action": action, "reason": reason, **details}
        if allocation is not None:
            event["network_utilization"] = allocation.network_utilization
            event["unserved_demand"] = allocation.unserved_demand
        return event


def optimize_network(registry: CandidateRegistry, demand_by_year: Mapping,
                     cost_model: CostModel, config: PlannerConfig,
                     cancel_event=None) -> NetworkResult:
    """Run the rolling-lease optimizer once. See RollingLeaseOptimizer."""
    return RollingLeaseOptimizer(registry, demand_by_year, cost_model, config,
                                 cancel_event=cancel_event).run()
