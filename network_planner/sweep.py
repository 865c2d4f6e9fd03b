"""
Scenario Sweep Driver — rerun the optimizer across network sizes.

For every node count N in [min_nodes, max_nodes] the candidate registry is
cut down to the top N sites under a selection policy and the optimizer is
run with max_facilities = N. Scenarios are independent: each gets its own
registry and configuration, and they may run concurrently on a thread
pool. Results are merged by node count, never by completion order.

Selection policies (which N sites a scenario may use):
  coverage — greedy on in-range demand covered, then cost per unit capacity
  cost     — lowest annual fixed cost per unit of base capacity
  listed   — the registry's own order
Mandatory and existing sites always come first. The orderings are prefixes
of one another, so the N-site set is contained in the (N+1)-site set.

A scenario that fails with a ConfigurationError or StructuralInfeasibility
is recorded with its error and excluded from best-selection; cancellation
stops the whole sweep.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

import pandas as pd

from network_planner.config import PlannerConfig
from network_planner.costs import CostModel
from network_planner.coverage_graph import CoverageGraph
from network_planner.errors import (
    ConfigurationError,
    OptimizationCancelled,
    StructuralInfeasibility,
)
from network_planner.fixed_network import solve_fixed_network
from network_planner.ontology import CandidateRegistry
from network_planner.optimizer import NetworkResult, optimize_network
from network_planner.ranker import SELECTION_CRITERIA, comparison_table, pick_best, scenario_kpis

logger = logging.getLogger(__name__)

SELECTION_POLICIES = ("coverage", "cost", "listed")


@dataclass
class ScenarioScore:
    nodes: int
    lease_years: int
    kpis: dict = field(default_factory=dict)
    facilities: list = field(default_factory=list)
    result: Optional[NetworkResult] = None
    error: Optional[dict] = None
    composite_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "nodes": self.nodes,
            "lease_years": self.lease_years,
            "kpis": dict(self.kpis),
            "facilities": list(self.facilities),
            "composite_score": self.composite_score,
            "error": self.error,
            "result": self.result.to_dict() if self.result is not None else None,
        }


@dataclass
class SweepResult:
    scenarios: list
    best: Optional[ScenarioScore]
    best_reason: str
    table: pd.DataFrame
    selection_policy: str

    def to_dict(self) -> dict:
        return {
            "scenarios": [s.to_dict() for s in self.scenarios],
            "best": self.best.to_dict() if self.best is not None else None,
            "best_reason": self.best_reason,
            "selection_policy": self.selection_policy,
            "table": self.table.to_dict(orient="records"),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# NODE SELECTION
# ═══════════════════════════════════════════════════════════════════════════════

def rank_sites(registry: CandidateRegistry, demand_by_year: Mapping, cost_model: CostModel,
               config: PlannerConfig, policy: str = "coverage") -> list[str]:
    """Full site ordering for a policy; scenario N uses the first N ids."""
    if policy not in SELECTION_POLICIES:
        raise ConfigurationError(f"must be one of {', '.join(SELECTION_POLICIES)}",
                                 "selection_policy")
    transport = config.transportation
    priority = list(dict.fromkeys(
        [fid for fid in transport.mandatory_facilities if fid in registry]
        + [f.facility_id for f in registry.existing()]
    ))
    rest = [fid for fid in registry.ids if fid not in priority]
    cost_per_unit = {fid: registry.cost_per_unit_capacity(fid, transport.fixed_cost_per_facility)
                     for fid in rest}

    if policy == "listed":
        ordered = rest
    elif policy == "cost":
        ordered = sorted(rest, key=lambda fid: (cost_per_unit[fid], fid))
    else:
        horizon_demand: dict = {}
        for demand in demand_by_year.values():
            for destination, volume in demand.items():
                horizon_demand[destination] = horizon_demand.get(destination, 0.0) + volume
        graph = CoverageGraph(registry, horizon_demand, cost_model, transport.max_distance_miles)
        ordered = graph.greedy_cover_order(rest, tie_break=cost_per_unit, already_open=priority)
    return priority + ordered


# ═══════════════════════════════════════════════════════════════════════════════
# SWEEPS
# ═══════════════════════════════════════════════════════════════════════════════

def _run_scenario(nodes: int, site_ids: list, registry: CandidateRegistry, demand_by_year,
                  cost_model, config: PlannerConfig, cancel_event) -> ScenarioScore:
    """One optimizer run; planner errors are captured on the score."""
    lease_years = config.transportation.lease_years
    score = ScenarioScore(nodes=nodes, lease_years=lease_years, facilities=list(site_ids))
    if cancel_event is not None and cancel_event.is_set():
        raise OptimizationCancelled(f"cancelled before scenario {nodes}")
    try:
        limited = registry.limit_to(site_ids)
        if config.optimization.mode == "fixed_lease":
            result = solve_fixed_network(limited, demand_by_year, cost_model, config)
        else:
            result = optimize_network(limited, demand_by_year, cost_model, config,
                                      cancel_event=cancel_event)
    except (ConfigurationError, StructuralInfeasibility) as exc:
        logger.warning("Scenario nodes=%d lease=%d failed: %s", nodes, lease_years, exc)
        score.error = exc.to_dict()
        return score

    score.result = result
    score.kpis = scenario_kpis(result)
    logger.info("Scenario nodes=%d lease=%d: cost %.2f, service %.3f",
                nodes, lease_years, score.kpis["total_network_cost_all_years"],
                score.kpis["weighted_service_level"])
    return score


def _run_all(jobs: list, max_workers: int) -> list:
    """Run (key, fn, args) jobs, serially or on a thread pool; return scores sorted by key."""
    results = {}
    if max_workers <= 1 or len(jobs) <= 1:
        for key, fn, args in jobs:
            results[key] = fn(*args)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(fn, *args): key for key, fn, args in jobs}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
    return [results[key] for key in sorted(results)]


def sweep(
    min_nodes: int,
    max_nodes: int,
    registry: CandidateRegistry,
    demand_by_year: Mapping,
    cost_model: CostModel,
    config: PlannerConfig,
    *,
    selection_policy: str = "coverage",
    criterion: str = "total_cost",
    max_workers: int = 1,
    cancel_event=None,
) -> SweepResult:
    """
    Run one scenario per node count and select the best.

    Args:
        min_nodes, max_nodes: inclusive node-count range, 1 <= min <= max.
        selection_policy: "coverage" (default), "cost" or "listed".
        criterion: "total_cost" (default) or "weighted".
        max_workers: thread pool size; 1 runs scenarios in order.
        cancel_event: threading.Event; checked before each scenario and year.

    Returns:
        SweepResult with scenarios in node-count order.
    """
    _check_bounds(min_nodes, max_nodes, criterion)
    order = rank_sites(registry, demand_by_year, cost_model, config, selection_policy)
    base_required = config.transportation.required_facilities
    logger.info("Sweep %d-%d nodes over %d sites (policy=%s, workers=%d)",
                min_nodes, max_nodes, len(order), selection_policy, max_workers)

    jobs = []
    for n in range(min_nodes, max_nodes + 1):
        try:
            scenario_config = config.with_transport(
                max_facilities=n, initial_facilities=n, required_facilities=min(base_required, n))
        except ConfigurationError as exc:
            jobs.append((n, _failed, (n, config.transportation.lease_years, order[:n], exc)))
            continue
        jobs.append((n, _run_scenario, (n, order[:n], registry, demand_by_year, cost_model,
                                        scenario_config, cancel_event)))

    scenarios = _run_all(jobs, max_workers)
    return _finish(scenarios, config, criterion, selection_policy)


def sweep_lease_years(
    lease_values: Iterable[int],
    registry: CandidateRegistry,
    demand_by_year: Mapping,
    cost_model: CostModel,
    config: PlannerConfig,
    *,
    criterion: str = "total_cost",
    max_workers: int = 1,
    cancel_event=None,
) -> SweepResult:
    """Rerun the optimizer on the full registry once per lease length."""
    if criterion not in SELECTION_CRITERIA:
        raise ConfigurationError(f"must be one of {', '.join(SELECTION_CRITERIA)}", "criterion")
    values = sorted(set(lease_values))
    if not values:
        raise ConfigurationError("at least one lease length is required", "leaseYears")
    nodes = config.transportation.max_facilities

    jobs = []
    for lease in values:
        try:
            scenario_config = config.with_transport(lease_years=lease)
        except ConfigurationError as exc:
            jobs.append((lease, _failed, (nodes, lease, registry.ids, exc)))
            continue
        jobs.append((lease, _run_scenario, (nodes, registry.ids, registry, demand_by_year,
                                            cost_model, scenario_config, cancel_event)))

    scenarios = _run_all(jobs, max_workers)
    return _finish(scenarios, config, criterion, "listed")


def _failed(nodes, lease_years, site_ids, exc) -> ScenarioScore:
    logger.warning("Scenario nodes=%d lease=%d rejected: %s", nodes, lease_years, exc)
    return ScenarioScore(nodes=nodes, lease_years=lease_years, facilities=list(site_ids),
                         error=exc.to_dict())


def _finish(scenarios, config, criterion, policy) -> SweepResult:
    best, reason = pick_best(scenarios, config.transportation.service_level_requirement,
                             config.optimization.weights, criterion)
    if best is not None:
        logger.info("Best scenario: nodes=%d lease=%d (%s)", best.nodes, best.lease_years, reason)
    else:
        logger.warning("Sweep finished without a successful scenario")
    return SweepResult(
        scenarios=scenarios,
        best=best,
        best_reason=reason,
        table=comparison_table(scenarios, best),
        selection_policy=policy,
    )


def _check_bounds(min_nodes, max_nodes, criterion):
    for name, value in (("minNodes", min_nodes), ("maxNodes", max_nodes)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(f"must be an integer >= 1, got {value!r}", name)
    if min_nodes > max_nodes:
        raise ConfigurationError(f"minNodes ({min_nodes}) exceeds maxNodes ({max_nodes})",
                                 "minNodes")
    if criterion not in SELECTION_CRITERIA:
        raise ConfigurationError(f"must be one of {', '.join(SELECTION_CRITERIA)}", "criterion")
