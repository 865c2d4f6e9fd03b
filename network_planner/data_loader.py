"""
Load planning inputs — from an invocation payload or a directory of CSVs —
and provide the demand table, facility registry, cost model and config.

Demand for a forecast year is resolved in this order:
  1. explicit demandByYear[year] volumes
  2. the baseline `demand` map, rescaled so its total equals annual_units
  3. annual_units split equally across the cost-matrix destinations

Facilities default to the cost-matrix rows, each with
max_capacity_per_facility of base capacity; a `capacity` map or a full
`facilities` list overrides that.
"""

import math
import os
from typing import Any, Mapping, Optional

import pandas as pd

from network_planner.config import PlannerConfig, _check_keys, _integer, _number, parse_expansion_tiers
from network_planner.costs import GeoCostModel, MatrixCostModel
from network_planner.errors import ConfigurationError
from network_planner.ontology import CandidateRegistry, Facility, FacilityKind


PAYLOAD_KEYS = {
    "forecast", "skus", "costMatrix", "config", "demand", "demandByYear", "capacity",
    "facilities", "destinations", "costModel", "minNodes", "maxNodes", "leaseYears",
    "selectionPolicy", "criterion", "maxWorkers", "compareFixed",
}
FACILITY_KEYS = {"id", "facility_id", "base_capacity", "location", "expansion_tiers", "kind",
                 "fixed_cost_per_year", "lease_start_year", "closable"}
SKU_KEYS = {"sku", "annual_volume", "units_per_case", "cases_per_pallet"}


class NetworkData:
    """Validated inputs for one planning run."""

    def __init__(self, registry: CandidateRegistry, demand: pd.DataFrame, cost_model,
                 config: PlannerConfig, skus: Optional[pd.DataFrame] = None):
        self.registry = registry
        self.demand = demand
        self.cost_model = cost_model
        self.config = config
        self.skus = skus if skus is not None else pd.DataFrame(columns=sorted(SKU_KEYS))

    # ── Constructors ─────────────────────────────────────────────────────────

    @classmethod
    def from_payload(cls, payload: Mapping) -> "NetworkData":
        payload = _check_keys(payload, PAYLOAD_KEYS, "")
        config = PlannerConfig.from_dict(payload.get("config"))
        transport = config.transportation

        # ── Cost model ────────────────────────────────────────────────────
        if payload.get("costMatrix") is not None:
            matrix = _check_keys(payload["costMatrix"], {"rows", "cols", "cost", "distance"},
                                 "costMatrix")
            for key in ("rows", "cols", "cost"):
                if key not in matrix:
                    raise ConfigurationError("is required", f"costMatrix.{key}")
            cost_model = MatrixCostModel.from_matrix(
                [str(r) for r in matrix["rows"]], [str(c) for c in matrix["cols"]],
                matrix["cost"], transport.cost_per_mile, matrix.get("distance"))
            origins = list(cost_model.origins)
            destinations = cost_model.destinations
        elif payload.get("destinations") is not None:
            destinations = list(_locations(payload["destinations"], "destinations"))
            cost_model = None
            origins = []
        else:
            raise ConfigurationError("costMatrix or destinations is required", "costMatrix")

        # ── Facilities ────────────────────────────────────────────────────
        if payload.get("facilities") is not None:
            facilities = _parse_facilities(payload["facilities"], transport)
        else:
            capacity = payload.get("capacity") or {}
            if not isinstance(capacity, Mapping):
                raise ConfigurationError("expected a map of facility id to capacity", "capacity")
            unknown = sorted(set(capacity) - set(origins))
            if unknown:
                raise ConfigurationError("facility not in costMatrix.rows", f"capacity.{unknown[0]}")
            facilities = [
                Facility(
                    facility_id=fid,
                    base_capacity=_number(capacity.get(fid, transport.max_capacity_per_facility),
                                          f"capacity.{fid}", minimum=0),
                    expansion_tiers=transport.expansion_tiers,
                )
                for fid in origins
            ]
        registry = CandidateRegistry(facilities)

        if cost_model is None:
            spec = _check_keys(payload.get("costModel"),
                               {"basis", "rate", "weight_per_unit", "circuity_factor"}, "costModel")
            located = {f.facility_id: f.location for f in registry if f.location is not None}
            cost_model = GeoCostModel(
                located, _locations(payload["destinations"], "destinations"),
                basis=spec.get("basis", "per_mile"),
                rate=_number(spec.get("rate", transport.cost_per_mile), "costModel.rate", minimum=0),
                weight_per_unit=_number(spec.get("weight_per_unit", 1.0),
                                        "costModel.weight_per_unit", minimum=0),
                circuity_factor=_number(spec.get("circuity_factor", 1.0),
                                        "costModel.circuity_factor", minimum=0, strict_min=True),
            )

        demand = _resolve_demand(payload, destinations)
        skus = _parse_skus(payload.get("skus"))
        return cls(registry, demand, cost_model, config, skus)

    @classmethod
    def from_csv_dir(cls, data_dir: str, config: Any = None) -> "NetworkData":
        """Load facilities.csv, demand.csv and cost_matrix.csv (long format)."""
        if not isinstance(config, PlannerConfig):
            config = PlannerConfig.from_dict(config)
        transport = config.transportation

        # ── Load CSV files ────────────────────────────────────────────────
        facilities = pd.read_csv(os.path.join(data_dir, "facilities.csv"))
        demand = pd.read_csv(os.path.join(data_dir, "demand.csv"))
        costs = pd.read_csv(os.path.join(data_dir, "cost_matrix.csv"))

        if "facility_id" not in facilities.columns or "base_capacity" not in facilities.columns:
            raise ConfigurationError("facility_id and base_capacity columns are required",
                                     "facilities.csv")
        registry = CandidateRegistry(_facility_from_row(row, transport)
                                     for row in facilities.to_dict(orient="records"))
        cost_model = MatrixCostModel.from_frame(costs, transport.cost_per_mile)
        return cls(registry, _validate_demand_frame(demand), cost_model, config)

    # ── Query methods ────────────────────────────────────────────────────────

    @property
    def years(self) -> list[int]:
        return sorted(int(y) for y in self.demand["year"].unique())

    @property
    def demand_by_year(self) -> dict:
        """year -> {destination: volume}, every planning year present."""
        result = {year: {} for year in self.years}
        for row in self.demand.itertuples(index=False):
            result[int(row.year)][str(row.destination)] = float(row.volume)
        return result

    def total_demand(self, year: int) -> float:
        return float(self.demand.loc[self.demand["year"] == year, "volume"].sum())

    def metadata(self) -> dict:
        return {
            "years": self.years,
            "demand_total_by_year": {str(year): self.total_demand(year) for year in self.years},
            "facilities": self.registry.ids,
            "destinations": sorted(self.demand["destination"].unique().tolist()),
            "sku_count": len(self.skus),
            "sku_annual_volume": float(self.skus["annual_volume"].sum()) if len(self.skus) else 0.0,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# PAYLOAD PARSING
# ═══════════════════════════════════════════════════════════════════════════════

def _locations(raw: Any, path: str) -> dict:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("expected a map of name to [lat, lng]", path)
    return {str(k): _lat_lng(v, f"{path}.{k}") for k, v in raw.items()}


def _lat_lng(raw: Any, path: str) -> tuple:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ConfigurationError("expected [lat, lng]", path)
    return (_number(raw[0], f"{path}[0]", minimum=-90, maximum=90),
            _number(raw[1], f"{path}[1]", minimum=-180, maximum=180))


def _parse_facilities(raw: Any, transport) -> list[Facility]:
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("expected a list of facilities", "facilities")
    parsed = []
    for i, item in enumerate(raw):
        path = f"facilities[{i}]"
        item = _check_keys(item, FACILITY_KEYS, path)
        fid = item.get("facility_id", item.get("id"))
        if not isinstance(fid, str) or not fid:
            raise ConfigurationError("facility id must be a non-empty string", f"{path}.id")
        kind = item.get("kind", FacilityKind.CANDIDATE.value)
        if kind not in {k.value for k in FacilityKind}:
            raise ConfigurationError(f"unknown kind {kind!r}", f"{path}.kind")
        tiers = item.get("expansion_tiers")
        parsed.append(Facility(
            facility_id=fid,
            base_capacity=_number(item.get("base_capacity", transport.max_capacity_per_facility),
                                  f"{path}.base_capacity", minimum=0),
            location=_lat_lng(item["location"], f"{path}.location")
            if item.get("location") is not None else None,
            expansion_tiers=parse_expansion_tiers(tiers, f"{path}.expansion_tiers")
            if tiers is not None else transport.expansion_tiers,
            kind=FacilityKind(kind),
            fixed_cost_per_year=_number(item["fixed_cost_per_year"], f"{path}.fixed_cost_per_year",
                                        minimum=0)
            if item.get("fixed_cost_per_year") is not None else None,
            lease_start_year=_integer(item["lease_start_year"], f"{path}.lease_start_year")
            if item.get("lease_start_year") is not None else None,
            closable=bool(item.get("closable", True)),
        ))
    return parsed


def _facility_from_row(row: dict, transport) -> Facility:
    def present(key):
        value = row.get(key)
        return value is not None and not (isinstance(value, float) and math.isnan(value))

    fid = str(row["facility_id"])
    location = None
    if present("lat") and present("lng"):
        location = _lat_lng([row["lat"], row["lng"]], f"facilities.{fid}.location")
    return Facility(
        facility_id=fid,
        base_capacity=_number(float(row["base_capacity"]), f"facilities.{fid}.base_capacity",
                              minimum=0),
        location=location,
        expansion_tiers=transport.expansion_tiers,
        kind=FacilityKind(row["kind"]) if present("kind") else FacilityKind.CANDIDATE,
        fixed_cost_per_year=float(row["fixed_cost_per_year"])
        if present("fixed_cost_per_year") else None,
        lease_start_year=int(row["lease_start_year"]) if present("lease_start_year") else None,
        closable=bool(row["closable"]) if present("closable") else True,
    )


def _parse_forecast(raw: Any) -> dict:
    """year -> annual_units."""
    if raw is None:
        return {}
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("expected a list of {year, annual_units}", "forecast")
    forecast = {}
    for i, row in enumerate(raw):
        row = _check_keys(row, {"year", "annual_units"}, f"forecast[{i}]")
        if "year" not in row:
            raise ConfigurationError("is required", f"forecast[{i}].year")
        year = _integer(row["year"], f"forecast[{i}].year")
        if year in forecast:
            raise ConfigurationError(f"duplicate forecast year {year}", f"forecast[{i}].year")
        forecast[year] = _number(row.get("annual_units", 0), f"forecast[{i}].annual_units",
                                 minimum=0)
    return forecast


def _parse_volumes(raw: Any, path: str) -> dict:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("expected a map of destination to volume", path)
    return {str(d): _number(v, f"{path}.{d}", minimum=0) for d, v in raw.items()}


def _resolve_demand(payload: Mapping, destinations: list) -> pd.DataFrame:
    forecast = _parse_forecast(payload.get("forecast"))

    explicit = {}
    if payload.get("demandByYear") is not None:
        by_year = payload["demandByYear"]
        if not isinstance(by_year, Mapping):
            raise ConfigurationError("expected a map of year to demand", "demandByYear")
        for year, volumes in by_year.items():
            key = _integer(int(year) if isinstance(year, str) and year.isdigit() else year,
                           "demandByYear")
            explicit[key] = _parse_volumes(volumes, f"demandByYear.{year}")

    baseline = _parse_volumes(payload["demand"], "demand") if payload.get("demand") else {}
    baseline_total = sum(baseline.values())

    years = sorted(set(forecast) | set(explicit))
    if not years:
        raise ConfigurationError("at least one forecast year is required", "forecast")

    rows = []
    for year in years:
        if year in explicit:
            volumes = explicit[year]
        elif baseline_total > 0:
            scale = forecast[year] / baseline_total
            volumes = {d: v * scale for d, v in baseline.items()}
        else:
            if not destinations:
                raise ConfigurationError("no destinations to spread annual_units over",
                                         "costMatrix.cols")
            share = forecast[year] / len(destinations)
            volumes = {d: share for d in destinations}
        rows.extend({"destination": d, "year": year, "volume": v} for d, v in volumes.items())

    return _validate_demand_frame(pd.DataFrame(rows, columns=["destination", "year", "volume"]))


def _validate_demand_frame(frame: pd.DataFrame) -> pd.DataFrame:
    missing = {"destination", "year", "volume"} - set(frame.columns)
    if missing:
        raise ConfigurationError(f"missing columns {sorted(missing)}", "demand")
    if frame.empty:
        raise ConfigurationError("at least one demand record is required", "demand")
    frame = frame.assign(destination=frame["destination"].astype(str),
                         year=frame["year"].astype(int),
                         volume=frame["volume"].astype(float))
    if frame["volume"].isna().any() or (frame["volume"] < 0).any():
        bad = frame[frame["volume"].isna() | (frame["volume"] < 0)].iloc[0]
        raise ConfigurationError(f"volume must be >= 0, got {bad['volume']}",
                                 f"demand[{bad['year']}].{bad['destination']}")
    dupes = frame.duplicated(subset=["destination", "year"])
    if dupes.any():
        bad = frame[dupes].iloc[0]
        raise ConfigurationError("duplicate demand record",
                                 f"demand[{bad['year']}].{bad['destination']}")
    return frame.sort_values(["year", "destination"]).reset_index(drop=True)


def _parse_skus(raw: Any) -> pd.DataFrame:
    if raw is None:
        return pd.DataFrame(columns=sorted(SKU_KEYS))
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("expected a list of SKUs", "skus")
    rows = []
    for i, sku in enumerate(raw):
        sku = _check_keys(sku, SKU_KEYS, f"skus[{i}]")
        rows.append({
            "sku": str(sku.get("sku", f"SKU{i + 1}")),
            "annual_volume": _number(sku.get("annual_volume", 0), f"skus[{i}].annual_volume",
                                     minimum=0),
            "units_per_case": _number(sku.get("units_per_case", 1), f"skus[{i}].units_per_case",
                                      minimum=0, strict_min=True),
            "cases_per_pallet": _number(sku.get("cases_per_pallet", 1),
                                        f"skus[{i}].cases_per_pallet", minimum=0, strict_min=True),
        })
    return pd.DataFrame(rows)
