"""
Score sweep scenarios and pick the best one.

Two selection rules:
  1. total_cost — cheapest total network cost among scenarios that meet the
     service-level requirement.
  2. weighted — lowest composite score, blending normalized cost, service
     level and utilization with the configured objective weights.

If no successful scenario meets the requirement, the one with the highest
service level wins and the reason says so.

Scores use min-max normalization over the successful scenarios only, so a
failed scenario never stretches the scale.
"""

from typing import Optional

import pandas as pd

from network_planner.config import ObjectiveWeights


SELECTION_CRITERIA = ("total_cost", "weighted")


def compute_composite_scores(kpis: pd.DataFrame, weights: ObjectiveWeights) -> pd.Series:
    """Normalized composite score per scenario row. Lower = better.

    Cost is normalized so the cheapest scenario scores 0.0; service level
    and utilization are inverted so the best scenario on each also scores 0.0.
    """
    cost = kpis["total_network_cost_all_years"].astype(float)
    service = kpis["weighted_service_level"].astype(float)
    util = kpis["avg_utilization"].astype(float)

    # Min-max normalize to [0, 1]; if all values are equal, norm = 0 (no differentiation)
    cost_range = cost.max() - cost.min()
    service_range = service.max() - service.min()
    util_range = util.max() - util.min()

    cost_norm = (cost - cost.min()) / cost_range if cost_range > 0 else 0.0
    service_norm = (service.max() - service) / service_range if service_range > 0 else 0.0
    util_norm = (util.max() - util) / util_range if util_range > 0 else 0.0

    w_total = weights.cost + weights.service_level + weights.utilization
    score = (
        (weights.cost / w_total) * cost_norm
        + (weights.service_level / w_total) * service_norm
        + (weights.utilization / w_total) * util_norm
    )
    return pd.Series(score, index=kpis.index, dtype=float)


def pick_best(scenarios: list, service_level_requirement: float, weights: ObjectiveWeights,
              criterion: str = "total_cost") -> tuple:
    """
    Return (best ScenarioScore or None, reason string).

    Scenarios with an error are ignored. composite_score is filled in on
    every successful scenario as a side effect, whichever criterion is used.
    """
    ok = [s for s in scenarios if s.error is None]
    if not ok:
        return None, "no_successful_scenarios"

    kpis = pd.DataFrame([s.kpis for s in ok])
    for scenario, score in zip(ok, compute_composite_scores(kpis, weights)):
        scenario.composite_score = round(float(score), 6)

    meeting = [s for s in ok
               if s.kpis["weighted_service_level"] >= service_level_requirement - 1e-9]
    if not meeting:
        best = max(ok, key=lambda s: (s.kpis["weighted_service_level"],
                                      -s.kpis["total_network_cost_all_years"], -s.nodes))
        return best, "highest_service_level_fallback"

    if criterion == "weighted":
        best = min(meeting, key=lambda s: (s.composite_score, s.nodes))
        return best, "lowest_composite_score"
    best = min(meeting, key=lambda s: (s.kpis["total_network_cost_all_years"], s.nodes))
    return best, "lowest_total_cost"


def scenario_kpis(result) -> dict:
    """Flatten a NetworkResult into the KPI columns of the comparison table."""
    totals = result.totals
    return {
        "total_network_cost_all_years": totals["total_network_cost_all_years"],
        "discounted_network_cost": totals["discounted_network_cost"],
        "weighted_service_level": totals["weighted_service_level"],
        "transport_cost": totals["total_transportation_cost"],
        "warehouse_cost": totals["total_warehouse_cost"],
        "facilities_opened": totals["facilities_opened"],
        "avg_utilization": totals["avg_utilization"],
        "unserved_demand": totals["total_unserved_demand"],
        "avg_cost_per_unit": totals["avg_cost_per_unit"],
    }


def comparison_table(scenarios: list, best: Optional[object] = None) -> pd.DataFrame:
    """One row per scenario, in node-count order, with the winner flagged."""
    rows = []
    for s in scenarios:
        rows.append({
            "nodes": s.nodes,
            "lease_years": s.lease_years,
            **(s.kpis or {}),
            "composite_score": s.composite_score,
            "facilities": ", ".join(s.facilities),
            "error": s.error,
            "is_best": best is not None and s is best,
        })
    return pd.DataFrame(rows)
