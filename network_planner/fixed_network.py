"""
Fixed-Lease Network Solver using PuLP.

Picks ONE facility set that stays leased for the whole planning horizon and
routes every year's demand through it, minimizing total (undiscounted)
lease + transportation cost. This is the "fixed lease" counterpart of the
rolling-lease optimizer and returns the same NetworkResult shape, so the
two can be compared side by side.

The model is a Mixed-Integer Linear Program:
  - open[i]      binary, 1 if site i is leased for the horizon
  - flow[i,d,y]  continuous, units shipped from site i to destination d in year y
  - short[d,y]   continuous, units of demand left unserved

Unserved units are allowed but priced far above any real route, so the
model is always feasible and shortfall shows up as data rather than as an
"Infeasible" status. Routes beyond max_distance_miles are allowed too, with
a per-mile penalty on the excess distance weighted by the service-level
objective weight.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

import pulp

from network_planner.allocator import EPSILON, Assignment, FacilityMetrics, summarize_assignments
from network_planner.config import PlannerConfig
from network_planner.costs import CostModel
from network_planner.errors import ConfigurationError, PlannerError, StructuralInfeasibility
from network_planner.ontology import CandidateRegistry
from network_planner.optimizer import (
    FacilityStatus,
    FacilityYearState,
    NetworkResult,
    YearResult,
    summarize_years,
    validate_demand,
)

logger = logging.getLogger(__name__)


@dataclass
class FixedNetworkSolution:
    """Raw MILP output before it is expanded into per-year results."""
    status: str
    open_facilities: list
    objective: float


def solve_fixed_network(
    registry: CandidateRegistry,
    demand_by_year: Mapping,
    cost_model: CostModel,
    config: PlannerConfig,
) -> NetworkResult:
    """
    Choose a single leased facility set for all years via MILP.

    Args:
        registry: Candidate and existing sites. Existing and mandatory sites
            are forced open.
        demand_by_year: year -> {destination: volume}.
        cost_model: unit cost / distance per (site, destination).
        config: planner configuration; min/max facility counts, distance
            limit, cost defaults and the solver time limit are read from it.

    Returns:
        NetworkResult with mode "fixed_lease".
    """
    transport = config.transportation
    years = validate_demand(demand_by_year, cost_model)
    sites = [f for f in registry if f.base_capacity > 0]
    forced = {f.facility_id for f in registry.existing()} | set(transport.mandatory_facilities)
    for fid in forced:
        registry.get(fid)

    total_demand = sum(sum(d.values()) for d in demand_by_year.values())
    if total_demand > EPSILON and not sites:
        raise StructuralInfeasibility("positive demand but no facility has capacity",
                                      year=years[0])
    if len(forced) > transport.max_facilities:
        raise ConfigurationError(
            f"{len(forced)} existing/mandatory facilities exceed max_facilities "
            f"({transport.max_facilities})", "transportation.max_facilities")

    # ── 1. Route table ───────────────────────────────────────────────────
    # Only finite routes become variables; out-of-range ones carry a penalty.
    routes = {}
    for facility in sites:
        for destination in cost_model.destinations:
            cost, distance = cost_model.route(facility.facility_id, destination)
            if cost == float("inf"):
                continue
            over = max(0.0, distance - transport.max_distance_miles)
            penalty = transport.weights.service_level * 10 * over
            routes[facility.facility_id, destination] = (cost, distance, cost + penalty)

    fixed_cost = {f.facility_id: registry.annual_fixed_cost(f.facility_id,
                                                            transport.fixed_cost_per_facility)
                  for f in sites}
    # Shortfall price: dearer than any route plus any site's cost per unit.
    worst_route = max((r[2] for r in routes.values()), default=0.0)
    worst_site = max((fixed_cost[f.facility_id] / f.base_capacity for f in sites), default=0.0)
    shortfall_price = 10 * (worst_route + worst_site) + 1.0

    # ── 2. Build MILP ────────────────────────────────────────────────────
    prob = pulp.LpProblem("FixedLeaseNetwork", pulp.LpMinimize)
    site_ids = [f.facility_id for f in sites]
    open_ = pulp.LpVariable.dicts("open", site_ids, cat="Binary")
    flow_keys = [(fid, d, y) for (fid, d) in routes for y in years
                 if demand_by_year[y].get(d, 0) > 0]
    flow = pulp.LpVariable.dicts("flow", flow_keys, lowBound=0, cat="Continuous")
    short_keys = [(d, y) for y in years for d, v in demand_by_year[y].items() if v > 0]
    short = pulp.LpVariable.dicts("short", short_keys, lowBound=0, cat="Continuous")

    # Objective: leases for every year + routed cost + shortfall
    prob += (
        pulp.lpSum(fixed_cost[fid] * len(years) * open_[fid] for fid in site_ids)
        + pulp.lpSum(routes[fid, d][2] * flow[fid, d, y] for (fid, d, y) in flow_keys)
        + pulp.lpSum(shortfall_price * short[k] for k in short_keys)
    )

    # Constraint 1 — Facility count between the required floor and the cap
    prob += pulp.lpSum(open_[fid] for fid in site_ids) <= transport.max_facilities, "MaxFacilities"
    prob += (pulp.lpSum(open_[fid] for fid in site_ids)
             >= min(transport.required_facilities, len(site_ids)), "MinFacilities")

    # Constraint 2 — Existing and mandatory sites stay leased
    for fid in sorted(forced):
        if fid in open_:
            prob += open_[fid] == 1, f"Forced_{fid}"

    # Constraint 3 — Every destination-year is served or counted short
    for d, y in short_keys:
        prob += (
            pulp.lpSum(flow[fid, d, y] for fid in site_ids if (fid, d, y) in flow)
            + short[d, y] == demand_by_year[y][d],
            f"Demand_{d}_{y}",
        )

    # Constraint 4 — Capacity linking: a closed site ships nothing
    capacity = {f.facility_id: f.base_capacity for f in sites}
    for fid in site_ids:
        for y in years:
            prob += (
                pulp.lpSum(flow[k] for k in flow_keys if k[0] == fid and k[2] == y)
                <= capacity[fid] * open_[fid],
                f"Cap_{fid}_{y}",
            )

    # ── 3. Solve ─────────────────────────────────────────────────────────
    limit = config.optimization.solver_time_limit_seconds
    solver = pulp.PULP_CBC_CMD(msg=0, timeLimit=limit) if limit else pulp.PULP_CBC_CMD(msg=0)
    prob.solve(solver)
    status = pulp.LpStatus[prob.status]
    logger.info("Fixed-lease MILP: %d sites, %d flow vars, status %s",
                len(site_ids), len(flow_keys), status)

    if status != "Optimal" and any(open_[fid].varValue is None for fid in site_ids):
        raise PlannerError(f"fixed-lease solver returned no solution ({status})")

    chosen = sorted(fid for fid in site_ids if (open_[fid].varValue or 0) > 0.5)
    solution = FixedNetworkSolution(status=status, open_facilities=chosen,
                                    objective=pulp.value(prob.objective) or 0.0)

    # ── 4. Extract per-year results ──────────────────────────────────────
    per_year = []
    warnings = []
    discount_rate = config.finance.discount_rate
    for index, year in enumerate(years):
        assignments = []
        for (fid, d, y) in flow_keys:
            if y != year or fid not in chosen:
                continue
            units = flow[fid, d, y].varValue
            # CBC can leave tiny non-zero values behind
            if units is None or units <= 1e-6:
                continue
            cost, distance, _ = routes[fid, d]
            assignments.append(Assignment(
                destination=d, facility_id=fid, year=year, volume_assigned=units,
                distance=distance, unit_cost=cost,
                within_service_level=distance <= transport.max_distance_miles,
            ))
        assignments.sort(key=lambda a: (a.destination, a.facility_id))
        allocation = summarize_assignments(assignments, {fid: capacity[fid] for fid in chosen},
                                           demand_by_year[year])

        warehouse_cost = sum(fixed_cost[fid] for fid in chosen)
        total_cost = warehouse_cost + allocation.transportation_cost
        metrics = dict(allocation.facility_metrics)
        for fid in chosen:
            metrics.setdefault(fid, FacilityMetrics(fid, 0.0, capacity[fid], 0.0, 0.0, 0.0, 0))

        if allocation.unserved_demand > EPSILON:
            message = f"year {year}: {allocation.unserved_demand:,.0f} units unserved"
            warnings.append(message)
            logger.warning(message)

        per_year.append(YearResult(
            year=year,
            open_facilities=tuple(chosen),
            assignments=tuple(assignments),
            facility_metrics=dict(sorted(metrics.items())),
            facility_states=_fixed_states(registry, chosen, year, years, index),
            unserved=dict(allocation.unserved),
            events=tuple({"facility_id": fid, "action": "open", "reason": "fixed_lease",
                          "annual_fixed_cost": fixed_cost[fid]}
                         for fid in chosen if not registry.get(fid).is_existing)
            if index == 0 else (),
            totals={
                **allocation.totals,
                "warehouse_cost": warehouse_cost,
                "total_cost": total_cost,
                "discounted_cost": total_cost / (1 + discount_rate) ** (index + 1),
            },
        ))

    result = summarize_years(per_year, "fixed_lease", warnings)
    result.totals["solver_status"] = solution.status
    result.totals["objective_value"] = solution.objective
    return result


def _fixed_states(registry, chosen, year, years, index) -> dict:
    states = {}
    for facility in registry:
        fid = facility.facility_id
        leased = fid in chosen
        if not leased:
            status = FacilityStatus.CLOSED
        elif index == 0 and not facility.is_existing:
            status = FacilityStatus.OPENING
        else:
            status = FacilityStatus.OPEN
        states[fid] = FacilityYearState(
            facility_id=fid, year=year, status=status,
            active_capacity=facility.base_capacity if leased else 0.0,
            lease_opened_year=years[0] if leased else None,
            lease_years_committed=len(years),
            capacity_available_year=years[0] if leased else None,
        )
    return states


def solve_fixed_network_or_none(registry, demand_by_year, cost_model, config) -> Optional[NetworkResult]:
    """Variant used for comparisons: returns None instead of raising on infeasibility."""
    try:
        return solve_fixed_network(registry, demand_by_year, cost_model, config)
    except StructuralInfeasibility as exc:
        logger.warning("Fixed-lease comparison skipped: %s", exc)
        return None
