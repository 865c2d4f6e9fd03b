"""
Multi-Year Financial Analyzer — savings, ROI, payback and NPV of a network plan.

Compares each year's optimized network cost against a baseline (the cost of
running the current network unchanged) and books the up-front investment of
every site the plan newly leases:

    savings[y]            = baseline[y] - optimized[y]
    cumulative_savings[y] = sum of savings up to and including y
    roi_percentage        = total_savings / total_investment * 100
    payback_year          = first y with cumulative_savings >= total_investment
    npv                   = sum (savings[y] - investment[y]) / (1 + r) ** (i + 1)

Cash flows are discounted end-of-year, i being the year's index in the horizon.
The analyzer is pure: it reads a NetworkResult and never changes it.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

import pandas as pd

from network_planner.errors import ConfigurationError
from network_planner.optimizer import NetworkResult


@dataclass
class FinancialAnalysis:
    years: list = field(default_factory=list)
    frame: pd.DataFrame = field(default_factory=pd.DataFrame)
    total_savings: float = 0.0
    total_investment: float = 0.0
    roi_percentage: Optional[float] = None
    payback_year: Optional[int] = None
    npv: float = 0.0

    def to_dict(self) -> dict:
        return {
            "years": list(self.years),
            "per_year": self.frame.to_dict(orient="records"),
            "total_savings": self.total_savings,
            "total_investment": self.total_investment,
            "roi_percentage": self.roi_percentage,
            "payback_year": self.payback_year,
            "npv": self.npv,
        }


def _baseline_for(baseline_cost: Union[float, Mapping], year: int) -> float:
    if isinstance(baseline_cost, Mapping):
        if year not in baseline_cost:
            raise ConfigurationError(f"no baseline cost for year {year}", "finance.baseline_cost")
        return float(baseline_cost[year])
    return float(baseline_cost)


def _opening_investment(result: NetworkResult, per_facility: Optional[float]) -> dict:
    """Investment booked per year: one charge for every site whose lease starts that year.

    Without an explicit per-site figure, a site's annual fixed cost (as
    recorded on its open event) stands in for its opening investment.
    """
    investment = {}
    for yr in result.per_year:
        openings = [e for e in yr.events if e.get("action") == "open"]
        if per_facility is not None:
            investment[yr.year] = per_facility * len(openings)
        else:
            investment[yr.year] = sum(e.get("annual_fixed_cost", 0.0) for e in openings)
    return investment


def analyze_financials(
    result: NetworkResult,
    baseline_cost: Union[float, Mapping],
    discount_rate: float = 0.08,
    total_investment: Optional[float] = None,
    opening_investment_per_facility: Optional[float] = None,
) -> FinancialAnalysis:
    """
    Savings, ROI, payback and NPV of a plan against a baseline cost.

    Args:
        result: optimizer output; its per-year total_cost is the optimized cost.
        baseline_cost: one cost applied to every year, or {year: cost}.
        discount_rate: annual rate for the NPV.
        total_investment: overrides the derived investment; booked in year 1.
        opening_investment_per_facility: investment per newly leased site.

    Returns:
        FinancialAnalysis with the per-year table in `frame`.
    """
    if discount_rate <= -1:
        raise ConfigurationError("must be > -1", "finance.discount_rate")
    if not result.per_year:
        return FinancialAnalysis()

    years = [yr.year for yr in result.per_year]
    if total_investment is not None:
        if total_investment < 0:
            raise ConfigurationError("must be >= 0", "finance.total_investment")
        investment = {y: 0.0 for y in years}
        investment[years[0]] = float(total_investment)
    else:
        investment = _opening_investment(result, opening_investment_per_facility)

    rows = []
    cumulative = 0.0
    npv = 0.0
    for i, yr in enumerate(result.per_year):
        baseline = _baseline_for(baseline_cost, yr.year)
        optimized = yr.totals["total_cost"]
        savings = baseline - optimized
        cumulative += savings
        net = savings - investment[yr.year]
        npv += net / (1 + discount_rate) ** (i + 1)
        rows.append({
            "year": yr.year,
            "baseline_cost": baseline,
            "optimized_cost": optimized,
            "savings": savings,
            "cumulative_savings": cumulative,
            "investment": investment[yr.year],
            "net_cash_flow": net,
        })

    frame = pd.DataFrame(rows)
    total_savings = float(frame["savings"].sum())
    invested = float(frame["investment"].sum())

    payback_year = None
    reached = frame[frame["cumulative_savings"] >= invested]
    if not reached.empty:
        payback_year = int(reached.iloc[0]["year"])

    return FinancialAnalysis(
        years=years,
        frame=frame,
        total_savings=total_savings,
        total_investment=invested,
        roi_percentage=total_savings / invested * 100 if invested > 0 else None,
        payback_year=payback_year,
        npv=npv,
    )
