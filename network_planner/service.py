"""
Invocation boundary: JSON-shaped payload in, JSON-safe dict out.

    run_optimization(payload)  -> {"ok": True, "result": {...}, ...}
    run_sweep(payload)         -> {"ok": True, "scenarios": [...], "best": {...}, ...}
    run_lease_sweep(payload)   -> same shape, one scenario per lease length

Planner errors propagate to the caller, which turns them into a response
with error_response(). Every successful response goes through
sanitize_for_json(): NaN and ±Infinity become None and the paths that were
touched are listed under "sanitized_fields", so a strict JSON encoder never
sees a non-finite float.
"""

import logging
import math
from enum import Enum
from typing import Any, Mapping

import numpy as np
import pandas as pd

from network_planner.config import _integer
from network_planner.data_loader import NetworkData
from network_planner.errors import ConfigurationError, PlannerError
from network_planner.financials import analyze_financials
from network_planner.fixed_network import solve_fixed_network, solve_fixed_network_or_none
from network_planner.optimizer import optimize_network
from network_planner.sweep import sweep, sweep_lease_years

logger = logging.getLogger(__name__)


def sanitize_for_json(obj: Any, path: str = "$") -> tuple:
    """Return (clean copy, list of JSON paths whose non-finite floats became None)."""
    touched: list[str] = []
    clean = _sanitize(obj, path, touched)
    return clean, touched


def _sanitize(obj, path, touched):
    if isinstance(obj, np.generic):
        obj = obj.item()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            touched.append(path)
            return None
        return obj
    if isinstance(obj, Mapping):
        return {str(k): _sanitize(v, f"{path}.{k}", touched) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        items = sorted(obj) if isinstance(obj, set) else obj
        return [_sanitize(v, f"{path}[{i}]", touched) for i, v in enumerate(items)]
    if isinstance(obj, pd.DataFrame):
        return _sanitize(obj.to_dict(orient="records"), path, touched)
    return obj


def error_response(exc: Exception) -> dict:
    """Map an exception to the {"ok": False, "error": {...}} response body."""
    if isinstance(exc, PlannerError):
        return {"ok": False, "error": exc.to_dict()}
    logger.exception("Unexpected planner failure")
    return {"ok": False, "error": {"type": "internal_error", "message": str(exc)}}


def _finish(response: dict) -> dict:
    clean, touched = sanitize_for_json(response)
    if touched:
        logger.warning("Replaced %d non-finite values in response", len(touched))
    clean["sanitized_fields"] = touched
    return clean


def run_optimization(payload: Mapping, cancel_event=None) -> dict:
    """Validate, run the rolling-lease (or fixed-lease) optimizer, attach financials."""
    data = NetworkData.from_payload(payload)
    config = data.config
    logger.info("Optimization request: %d sites, %d years, mode=%s",
                len(data.registry), len(data.years), config.optimization.mode)

    if config.optimization.mode == "fixed_lease":
        result = solve_fixed_network(data.registry, data.demand_by_year, data.cost_model, config)
    else:
        result = optimize_network(data.registry, data.demand_by_year, data.cost_model, config,
                                  cancel_event=cancel_event)

    response = {
        "ok": True,
        "mode": result.mode,
        "result": result.to_dict(),
        "metadata": data.metadata(),
    }
    if payload.get("compareFixed") and result.mode != "fixed_lease":
        fixed = solve_fixed_network_or_none(data.registry, data.demand_by_year,
                                            data.cost_model, config)
        response["fixedComparison"] = fixed.totals if fixed is not None else None

    finance = config.finance
    if finance.baseline_cost is not None:
        response["financials"] = analyze_financials(
            result, finance.baseline_cost,
            discount_rate=finance.discount_rate,
            opening_investment_per_facility=finance.opening_investment_per_facility,
        ).to_dict()
    return _finish(response)


def _sweep_options(payload: Mapping) -> dict:
    workers = _integer(payload.get("maxWorkers", 1), "maxWorkers", minimum=1)
    criterion = payload.get("criterion", "total_cost")
    return {"criterion": criterion, "max_workers": workers}


def run_sweep(payload: Mapping, cancel_event=None) -> dict:
    """Node-count sweep over [minNodes, maxNodes]."""
    for key in ("minNodes", "maxNodes"):
        if key not in payload:
            raise ConfigurationError("is required", key)
    data = NetworkData.from_payload(payload)
    outcome = sweep(
        payload["minNodes"], payload["maxNodes"],
        data.registry, data.demand_by_year, data.cost_model, data.config,
        selection_policy=payload.get("selectionPolicy", "coverage"),
        cancel_event=cancel_event,
        **_sweep_options(payload),
    )
    return _finish({"ok": True, **outcome.to_dict(), "metadata": data.metadata()})


def run_lease_sweep(payload: Mapping, cancel_event=None) -> dict:
    """Lease-length sweep over payload["leaseYears"]."""
    values = payload.get("leaseYears")
    if not isinstance(values, (list, tuple)) or not values:
        raise ConfigurationError("expected a non-empty list of lease lengths", "leaseYears")
    values = [_integer(v, f"leaseYears[{i}]", minimum=1) for i, v in enumerate(values)]
    data = NetworkData.from_payload(payload)
    outcome = sweep_lease_years(values, data.registry, data.demand_by_year, data.cost_model,
                                data.config, cancel_event=cancel_event, **_sweep_options(payload))
    return _finish({"ok": True, **outcome.to_dict(), "metadata": data.metadata()})
