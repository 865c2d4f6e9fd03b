"""
Tests for the input model and the invocation boundary.

Covers payload parsing (demand resolution, facilities, cost models), the
CSV directory loader, JSON sanitization, error responses and the CLI.

Run: python -m pytest tests/test_service.py -v
"""

import json
import math

import pytest

from network_planner.cli import main
from network_planner.costs import GeoCostModel
from network_planner.data_loader import NetworkData
from network_planner.errors import ConfigurationError, StructuralInfeasibility
from network_planner.ontology import FacilityKind
from network_planner.service import (
    error_response,
    run_lease_sweep,
    run_optimization,
    run_sweep,
    sanitize_for_json,
)


def base_payload(**overrides) -> dict:
    payload = {
        "forecast": [{"year": 2025, "annual_units": 1000}],
        "skus": [{"sku": "SKU1", "annual_volume": 1000, "units_per_case": 10,
                  "cases_per_pallet": 40}],
        "costMatrix": {"rows": ["facility1"], "cols": ["DestA"], "cost": [[10.0]]},
        "capacity": {"facility1": 1500},
        "config": {
            "optimization": {"weights": {"cost": 0.6, "service_level": 0.3, "utilization": 0.1}},
            "transportation": {"fixed_cost_per_facility": 250000, "cost_per_mile": 2.85,
                               "service_level_requirement": 0.95, "max_distance_miles": 800,
                               "required_facilities": 1, "max_facilities": 5, "lease_years": 7,
                               "mandatory_facilities": []},
        },
    }
    payload.update(overrides)
    return payload


def two_site_payload(**overrides) -> dict:
    return base_payload(
        forecast=[{"year": 2025, "annual_units": 1500}, {"year": 2026, "annual_units": 1500}],
        costMatrix={"rows": ["F1", "F2"], "cols": ["X"], "cost": [[5.0], [10.0]]},
        capacity={"F1": 1000, "F2": 1000},
        **overrides,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# 1. PAYLOAD INPUT MODEL
# ═══════════════════════════════════════════════════════════════════════════════

class TestPayloadParsing:
    def test_equal_split_over_destinations(self):
        payload = base_payload(costMatrix={"rows": ["F"], "cols": ["X", "Y"],
                                           "cost": [[1.0, 1.0]]}, capacity={"F": 5000})
        data = NetworkData.from_payload(payload)
        assert data.demand_by_year == {2025: {"X": 500.0, "Y": 500.0}}

    def test_baseline_shares_scaled_to_annual_units(self):
        payload = base_payload(costMatrix={"rows": ["F"], "cols": ["X", "Y"],
                                           "cost": [[1.0, 1.0]]},
                               capacity={"F": 5000}, demand={"X": 1, "Y": 3})
        data = NetworkData.from_payload(payload)
        assert data.demand_by_year[2025] == pytest.approx({"X": 250.0, "Y": 750.0})

    def test_explicit_year_demand_wins(self):
        payload = base_payload(demandByYear={"2025": {"DestA": 42}, "2026": {"DestA": 7}})
        data = NetworkData.from_payload(payload)
        assert data.years == [2025, 2026]
        assert data.demand_by_year[2025] == {"DestA": 42.0}

    def test_default_capacity_is_max_capacity_per_facility(self):
        payload = base_payload(capacity=None)
        data = NetworkData.from_payload(payload)
        assert data.registry.get("facility1").base_capacity == 15_000_000

    def test_capacity_for_unknown_row(self):
        with pytest.raises(ConfigurationError) as exc:
            NetworkData.from_payload(base_payload(capacity={"ghost": 10}))
        assert exc.value.field == "capacity.ghost"

    def test_negative_forecast_rejected(self):
        with pytest.raises(ConfigurationError):
            NetworkData.from_payload(base_payload(forecast=[{"year": 2025, "annual_units": -5}]))

    def test_duplicate_forecast_year(self):
        forecast = [{"year": 2025, "annual_units": 1}, {"year": 2025, "annual_units": 2}]
        with pytest.raises(ConfigurationError):
            NetworkData.from_payload(base_payload(forecast=forecast))

    def test_unknown_payload_key(self):
        with pytest.raises(ConfigurationError) as exc:
            NetworkData.from_payload(base_payload(bogus=True))
        assert exc.value.field == "bogus"

    def test_ragged_cost_matrix(self):
        matrix = {"rows": ["A", "B"], "cols": ["X"], "cost": [[1.0], [2.0, 3.0]]}
        with pytest.raises(ConfigurationError) as exc:
            NetworkData.from_payload(base_payload(costMatrix=matrix))
        assert exc.value.field == "costMatrix.cost"

    def test_skus_reported_in_metadata(self):
        data = NetworkData.from_payload(base_payload())
        meta = data.metadata()
        assert meta["sku_count"] == 1
        assert meta["sku_annual_volume"] == 1000

    def test_facility_list_with_locations_builds_geo_model(self):
        payload = base_payload(
            costMatrix=None, capacity=None,
            facilities=[
                {"id": "NJ", "base_capacity": 5000, "location": [40.73, -74.17],
                 "expansion_tiers": [{"name": "t1", "capacity_increment": 1000,
                                      "fixed_cost_per_year": 20000}]},
                {"id": "PA", "base_capacity": 5000, "location": [39.95, -75.16],
                 "kind": "existing", "lease_start_year": 2023},
            ],
            destinations={"NYC": [40.71, -74.00], "PHL": [39.95, -75.17]},
            costModel={"basis": "per_mile", "rate": 1.5},
        )
        data = NetworkData.from_payload(payload)
        assert isinstance(data.cost_model, GeoCostModel)
        assert data.registry.get("PA").kind == FacilityKind.EXISTING
        assert data.registry.get("NJ").expansion_tiers[0].capacity_increment == 1000
        assert data.demand_by_year[2025] == {"NYC": 500.0, "PHL": 500.0}


class TestCsvLoader:
    def write(self, tmp_path, facilities, demand, costs):
        (tmp_path / "facilities.csv").write_text(facilities)
        (tmp_path / "demand.csv").write_text(demand)
        (tmp_path / "cost_matrix.csv").write_text(costs)
        return str(tmp_path)

    def test_loads_directory(self, tmp_path):
        path = self.write(
            tmp_path,
            "facility_id,base_capacity,kind,lease_start_year\nA,1000,existing,2024\nB,500,,\n",
            "destination,year,volume\nX,2025,300\nX,2026,400\nY,2025,100\nY,2026,0\n",
            "facility_id,destination,unit_cost\nA,X,1.0\nA,Y,2.0\nB,X,3.0\nB,Y,1.5\n",
        )
        data = NetworkData.from_csv_dir(path, {"transportation": {"lease_years": 3}})
        assert data.registry.ids == ["A", "B"]
        assert data.registry.get("A").lease_start_year == 2024
        assert data.registry.get("B").kind == FacilityKind.CANDIDATE
        assert data.demand_by_year[2026] == {"X": 400.0, "Y": 0.0}
        assert data.config.transportation.lease_years == 3
        assert data.cost_model.route("B", "Y") == (1.5, 1.5 / 2.85)
        assert data.metadata()["demand_total_by_year"] == {"2025": 400.0, "2026": 400.0}

    def test_duplicate_demand_rejected(self, tmp_path):
        path = self.write(
            tmp_path,
            "facility_id,base_capacity\nA,1000\n",
            "destination,year,volume\nX,2025,300\nX,2025,400\n",
            "facility_id,destination,unit_cost\nA,X,1.0\n",
        )
        with pytest.raises(ConfigurationError) as exc:
            NetworkData.from_csv_dir(path)
        assert exc.value.field == "demand[2025].X"


# ═══════════════════════════════════════════════════════════════════════════════
# 2. SERVICE BOUNDARY
# ═══════════════════════════════════════════════════════════════════════════════

class TestRunOptimization:
    def test_scenario_one_payload(self):
        response = run_optimization(base_payload())
        assert response["ok"] is True
        assert response["mode"] == "rolling_lease"
        assert response["result"]["openByYear"] == {"2025": ["facility1"]}
        year = response["result"]["perYear"][0]
        assert year["totals"]["unserved_demand"] == 0
        assert year["totals"]["network_utilization"] == pytest.approx(2 / 3)
        assert isinstance(response["sanitized_fields"], list)

    def test_response_is_strict_json(self):
        response = run_optimization(two_site_payload(compareFixed=True))
        json.dumps(response, allow_nan=False)

    def test_fixed_mode(self):
        payload = two_site_payload()
        payload["config"]["optimization"]["mode"] = "fixed_lease"
        response = run_optimization(payload)
        assert response["mode"] == "fixed_lease"
        assert response["result"]["openByYear"]["2025"] == ["F1", "F2"]

    def test_fixed_comparison_attached(self):
        response = run_optimization(two_site_payload(compareFixed=True))
        assert response["fixedComparison"]["total_network_cost_all_years"] > 0

    def test_financials_attached_with_baseline(self):
        payload = base_payload()
        payload["config"]["finance"] = {"baseline_cost": 300000, "discount_rate": 0.08}
        response = run_optimization(payload)
        assert response["financials"]["total_savings"] == pytest.approx(40000)
        assert response["financials"]["roi_percentage"] == pytest.approx(16.0)

    def test_structural_infeasibility_propagates(self):
        with pytest.raises(StructuralInfeasibility):
            run_optimization(base_payload(capacity={"facility1": 0}))


class TestRunSweep:
    def test_sweep_payload(self):
        response = run_sweep(two_site_payload(minNodes=1, maxNodes=2))
        assert [s["nodes"] for s in response["scenarios"]] == [1, 2]
        assert response["best"]["nodes"] == 2
        assert response["selection_policy"] == "coverage"
        assert len(response["table"]) == 2

    def test_sweep_requires_bounds(self):
        with pytest.raises(ConfigurationError) as exc:
            run_sweep(two_site_payload(maxNodes=2))
        assert exc.value.field == "minNodes"

    def test_min_above_max(self):
        with pytest.raises(ConfigurationError):
            run_sweep(two_site_payload(minNodes=3, maxNodes=2))

    def test_lease_sweep(self):
        response = run_lease_sweep(two_site_payload(leaseYears=[3, 1]))
        assert [s["lease_years"] for s in response["scenarios"]] == [1, 3]


class TestSanitize:
    def test_non_finite_replaced_and_reported(self):
        clean, touched = sanitize_for_json({"a": float("nan"), "b": [1.0, float("inf")],
                                            "c": {"d": -math.inf}})
        assert clean == {"a": None, "b": [1.0, None], "c": {"d": None}}
        assert touched == ["$.a", "$.b[1]", "$.c.d"]

    def test_finite_values_untouched(self):
        clean, touched = sanitize_for_json({"x": (1, 2.5, "s"), "y": None})
        assert clean == {"x": [1, 2.5, "s"], "y": None}
        assert touched == []


class TestErrorResponse:
    def test_configuration_error(self):
        body = error_response(ConfigurationError("must be > 0", "config.transportation.lease_years"))
        assert body["ok"] is False
        assert body["error"]["type"] == "configuration_error"
        assert body["error"]["field"] == "config.transportation.lease_years"

    def test_structural_infeasibility(self):
        body = error_response(StructuralInfeasibility("no capacity", year=2027))
        assert body["error"] == {"type": "structural_infeasibility", "message": "no capacity",
                                 "year": 2027}

    def test_unexpected_error(self):
        assert error_response(RuntimeError("boom"))["error"]["type"] == "internal_error"


# ═══════════════════════════════════════════════════════════════════════════════
# 3. CLI
# ═══════════════════════════════════════════════════════════════════════════════

class TestCli:
    def test_optimize_writes_output(self, tmp_path):
        payload_path = tmp_path / "payload.json"
        payload_path.write_text(json.dumps(base_payload()))
        out = tmp_path / "out.json"
        assert main(["--output", str(out), "optimize", str(payload_path)]) == 0
        assert json.loads(out.read_text())["ok"] is True

    def test_sweep_with_overrides(self, tmp_path):
        payload_path = tmp_path / "payload.json"
        payload_path.write_text(json.dumps(two_site_payload()))
        out = tmp_path / "out.json"
        code = main(["--output", str(out), "sweep", str(payload_path),
                     "--min-nodes", "1", "--max-nodes", "2"])
        assert code == 0
        assert len(json.loads(out.read_text())["scenarios"]) == 2

    def test_invalid_payload_returns_error(self, tmp_path):
        payload = base_payload()
        payload["config"]["transportation"]["lease_years"] = 0
        payload_path = tmp_path / "payload.json"
        payload_path.write_text(json.dumps(payload))
        out = tmp_path / "out.json"
        assert main(["--output", str(out), "optimize", str(payload_path)]) == 2
        body = json.loads(out.read_text())
        assert body["error"]["field"] == "config.transportation.lease_years"

    def test_missing_payload_file(self, tmp_path):
        out = tmp_path / "out.json"
        assert main(["--output", str(out), "optimize", str(tmp_path / "absent.json")]) == 2
        body = json.loads(out.read_text())
        assert body["ok"] is False
        assert "cannot read payload" in body["error"]["message"]
