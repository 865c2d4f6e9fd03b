"""
Validated planner configuration.

The payloads this planner receives are loosely-typed dictionaries with
optional sections. They are converted here, once, into frozen dataclasses.
Every default lives in the dataclass field declarations below; unknown keys
and malformed values are rejected with a ConfigurationError naming the
offending field, so nothing deeper in the algorithm has to guess.

    config = PlannerConfig.from_dict(payload["config"])
    config.transportation.lease_years      # -> 7 unless overridden
"""

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping, Optional

from network_planner.errors import ConfigurationError
from network_planner.ontology import ExpansionTier


OPTIMIZATION_MODES = ("rolling_lease", "fixed_lease")


# ═══════════════════════════════════════════════════════════════════════════════
# FIELD VALIDATORS
# ═══════════════════════════════════════════════════════════════════════════════

def _number(value: Any, path: str, minimum: Optional[float] = None,
            maximum: Optional[float] = None, strict_min: bool = False) -> float:
    """Coerce to float, rejecting bools, NaN/inf and out-of-range values."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"expected a number, got {value!r}", path)
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise ConfigurationError("must be a finite number", path)
    if minimum is not None:
        if strict_min and value <= minimum:
            raise ConfigurationError(f"must be > {minimum}, got {value}", path)
        if not strict_min and value < minimum:
            raise ConfigurationError(f"must be >= {minimum}, got {value}", path)
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"must be <= {maximum}, got {value}", path)
    return value


def _integer(value: Any, path: str, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"expected an integer, got {value!r}", path)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ConfigurationError(f"expected an integer, got {value!r}", path)
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"must be >= {minimum}, got {value}", path)
    return value


def _check_keys(data: Any, allowed: set, path: str) -> Mapping:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"expected an object, got {type(data).__name__}", path)
    unknown = sorted(set(data) - allowed)
    if unknown:
        where = f"{path}.{unknown[0]}" if path else unknown[0]
        raise ConfigurationError("unknown configuration field", where)
    return data


def parse_expansion_tiers(raw: Any, path: str) -> tuple:
    """Parse a list of {name, capacity_increment, fixed_cost_per_year} dicts."""
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("expected a list of expansion tiers", path)
    tiers = []
    for i, tier in enumerate(raw):
        tier_path = f"{path}[{i}]"
        tier = _check_keys(tier, {"name", "capacity_increment", "fixed_cost_per_year"}, tier_path)
        name = tier.get("name", f"tier_{i + 1}")
        if not isinstance(name, str) or not name:
            raise ConfigurationError("tier name must be a non-empty string", f"{tier_path}.name")
        if "capacity_increment" not in tier:
            raise ConfigurationError("is required", f"{tier_path}.capacity_increment")
        tiers.append(ExpansionTier(
            name=name,
            capacity_increment=_number(tier["capacity_increment"],
                                       f"{tier_path}.capacity_increment",
                                       minimum=0, strict_min=True),
            fixed_cost_per_year=_number(tier.get("fixed_cost_per_year", 0.0),
                                        f"{tier_path}.fixed_cost_per_year", minimum=0),
        ))
    return tuple(tiers)


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION SECTIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ObjectiveWeights:
    """Blend used to score scenarios: cost, service level and utilization."""
    cost: float = 0.6
    service_level: float = 0.3
    utilization: float = 0.1

    @classmethod
    def from_dict(cls, data: Any, path: str = "optimization.weights") -> "ObjectiveWeights":
        data = _check_keys(data, {f.name for f in fields(cls)}, path)
        kwargs = {k: _number(v, f"{path}.{k}", minimum=0) for k, v in data.items()}
        weights = cls(**kwargs)
        if weights.cost + weights.service_level + weights.utilization <= 0:
            raise ConfigurationError("at least one weight must be positive", path)
        return weights


@dataclass(frozen=True)
class OptimizationConfig:
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)
    mode: str = "rolling_lease"
    solver_time_limit_seconds: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "optimization") -> "OptimizationConfig":
        data = _check_keys(data, {"weights", "mode", "solver", "solver_time_limit_seconds"}, path)
        mode = data.get("mode", cls.mode)
        if mode not in OPTIMIZATION_MODES:
            raise ConfigurationError(
                f"must be one of {', '.join(OPTIMIZATION_MODES)}, got {mode!r}", f"{path}.mode")
        # Payloads may name a solver; only the label is accepted, CBC always runs.
        solver = data.get("solver")
        if solver is not None and not isinstance(solver, str):
            raise ConfigurationError("expected a solver name", f"{path}.solver")
        limit = data.get("solver_time_limit_seconds")
        if limit is not None:
            limit = _number(limit, f"{path}.solver_time_limit_seconds", minimum=0, strict_min=True)
        return cls(
            weights=ObjectiveWeights.from_dict(data.get("weights"), f"{path}.weights"),
            mode=mode,
            solver_time_limit_seconds=limit,
        )


@dataclass(frozen=True)
class TransportConfig:
    """Network, lease and service parameters (the `transportation` section)."""
    fixed_cost_per_facility: float = 250_000.0
    cost_per_mile: float = 2.85
    service_level_requirement: float = 0.95
    max_distance_miles: float = 800.0
    required_facilities: int = 1
    max_facilities: int = 5
    initial_facilities: Optional[int] = None
    max_capacity_per_facility: float = 15_000_000.0
    mandatory_facilities: tuple = ()
    lease_years: int = 7
    max_utilization: float = 0.85
    min_utilization: float = 0.5
    opening_lag_years: int = 0
    expansion_tiers: tuple = ()
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)

    @property
    def initial_network_size(self) -> int:
        if self.initial_facilities is None:
            return self.required_facilities
        return self.initial_facilities

    @classmethod
    def from_dict(cls, data: Any, path: str = "transportation") -> "TransportConfig":
        data = _check_keys(data, {f.name for f in fields(cls)}, path)
        kwargs = {}
        for key in ("fixed_cost_per_facility", "cost_per_mile", "max_distance_miles",
                    "max_capacity_per_facility"):
            if key in data:
                kwargs[key] = _number(data[key], f"{path}.{key}", minimum=0)
        for key in ("service_level_requirement", "max_utilization", "min_utilization"):
            if key in data:
                kwargs[key] = _number(data[key], f"{path}.{key}", minimum=0, maximum=1)
        for key in ("required_facilities", "opening_lag_years"):
            if key in data:
                kwargs[key] = _integer(data[key], f"{path}.{key}", minimum=0)
        if "max_facilities" in data:
            kwargs["max_facilities"] = _integer(data["max_facilities"],
                                                f"{path}.max_facilities", minimum=1)
        if data.get("initial_facilities") is not None:
            kwargs["initial_facilities"] = _integer(data["initial_facilities"],
                                                    f"{path}.initial_facilities", minimum=0)
        if "lease_years" in data:
            lease = data["lease_years"]
            if isinstance(lease, (int, float)) and not isinstance(lease, bool) and lease <= 0:
                raise ConfigurationError(f"must be > 0, got {lease}", f"{path}.lease_years")
            kwargs["lease_years"] = _integer(lease, f"{path}.lease_years", minimum=1)
        if "mandatory_facilities" in data:
            mandatory = data["mandatory_facilities"] or []
            if not isinstance(mandatory, (list, tuple)) or not all(
                    isinstance(m, str) for m in mandatory):
                raise ConfigurationError("expected a list of facility ids",
                                         f"{path}.mandatory_facilities")
            kwargs["mandatory_facilities"] = tuple(dict.fromkeys(mandatory))
        if "expansion_tiers" in data:
            kwargs["expansion_tiers"] = parse_expansion_tiers(data["expansion_tiers"],
                                                              f"{path}.expansion_tiers")
        if "weights" in data:
            kwargs["weights"] = ObjectiveWeights.from_dict(data["weights"], f"{path}.weights")

        config = cls(**kwargs)
        config.validate(path)
        return config

    def validate(self, path: str = "transportation") -> None:
        """Cross-field checks; also run on variants built with dataclasses.replace."""
        if self.lease_years <= 0:
            raise ConfigurationError(f"must be > 0, got {self.lease_years}", f"{path}.lease_years")
        if self.required_facilities > self.max_facilities:
            raise ConfigurationError(
                f"required_facilities ({self.required_facilities}) exceeds "
                f"max_facilities ({self.max_facilities})", f"{path}.required_facilities")
        if self.initial_network_size > self.max_facilities:
            raise ConfigurationError(
                f"initial network of {self.initial_network_size} exceeds "
                f"max_facilities ({self.max_facilities})", f"{path}.initial_facilities")
        if len(self.mandatory_facilities) > self.max_facilities:
            raise ConfigurationError(
                f"{len(self.mandatory_facilities)} mandatory facilities exceed "
                f"max_facilities ({self.max_facilities})", f"{path}.mandatory_facilities")
        if self.min_utilization > self.max_utilization:
            raise ConfigurationError("must not exceed max_utilization", f"{path}.min_utilization")


@dataclass(frozen=True)
class FinanceConfig:
    discount_rate: float = 0.08
    baseline_cost: Any = None
    opening_investment_per_facility: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "finance") -> "FinanceConfig":
        data = _check_keys(data, {f.name for f in fields(cls)}, path)
        kwargs = {}
        if "discount_rate" in data:
            kwargs["discount_rate"] = _number(data["discount_rate"], f"{path}.discount_rate",
                                              minimum=-1, strict_min=True)
        baseline = data.get("baseline_cost")
        if baseline is not None:
            if isinstance(baseline, Mapping):
                baseline = {_integer(int(y) if isinstance(y, str) and y.isdigit() else y,
                                     f"{path}.baseline_cost"):
                            _number(v, f"{path}.baseline_cost[{y}]", minimum=0)
                            for y, v in baseline.items()}
            else:
                baseline = _number(baseline, f"{path}.baseline_cost", minimum=0)
            kwargs["baseline_cost"] = baseline
        if data.get("opening_investment_per_facility") is not None:
            kwargs["opening_investment_per_facility"] = _number(
                data["opening_investment_per_facility"],
                f"{path}.opening_investment_per_facility", minimum=0)
        return cls(**kwargs)


@dataclass(frozen=True)
class PlannerConfig:
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)
    transportation: TransportConfig = field(default_factory=TransportConfig)
    finance: FinanceConfig = field(default_factory=FinanceConfig)

    @classmethod
    def from_dict(cls, data: Any) -> "PlannerConfig":
        data = _check_keys(data, {"optimization", "transportation", "finance"}, "config")
        return cls(
            optimization=OptimizationConfig.from_dict(data.get("optimization"), "config.optimization"),
            transportation=TransportConfig.from_dict(data.get("transportation"), "config.transportation"),
            finance=FinanceConfig.from_dict(data.get("finance"), "config.finance"),
        )

    def with_transport(self, **changes) -> "PlannerConfig":
        """Copy with transportation fields replaced, re-validated."""
        transport = replace(self.transportation, **changes)
        transport.validate("config.transportation")
        return replace(self, transportation=transport)
