"""
Coverage Graph — NetworkX DiGraph of which facilities can serve which destinations.

Facilities and destinations are typed nodes; a COVERS edge links a facility
to every destination within the max service distance, carrying the route's
distance and unit cost. Destination nodes carry their demand for the year
(or horizon) the graph was built for.

Enables coverage queries that are awkward with the flat cost model:
  - Greedy seeding: "which sites cover the most uncovered demand?"
  - Impact analysis: "which destinations lose in-range service if site X closes?"
  - Coverage share: "what fraction of demand is in range of this open set?"

Node IDs use type prefixes (facility:, destination:) so a site and a market
that share a city name do not collide.
"""

from typing import Iterable, Mapping

import networkx as nx

from network_planner.costs import CostModel
from network_planner.ontology import CandidateRegistry


class CoverageGraph:
    """Bipartite facility → destination graph limited to in-range routes."""

    def __init__(self, registry: CandidateRegistry, demand: Mapping[str, float],
                 cost_model: CostModel, max_distance_miles: float):
        self._registry = registry
        self.max_distance_miles = max_distance_miles
        self.graph = nx.DiGraph()
        self._build(demand, cost_model)

    def _build(self, demand, cost_model):
        g = self.graph

        # ── Facility nodes ────────────────────────────────────────────────
        for facility in self._registry:
            g.add_node(
                f"facility:{facility.facility_id}",
                node_type="facility",
                facility_id=facility.facility_id,
                base_capacity=facility.base_capacity,
                existing=facility.is_existing,
            )

        # ── Destination nodes ─────────────────────────────────────────────
        for destination, volume in demand.items():
            g.add_node(
                f"destination:{destination}",
                node_type="destination",
                destination=destination,
                demand=float(volume),
            )

        # ── COVERS edges (facility → destination within range) ────────────
        for facility in self._registry:
            for destination in demand:
                cost, distance = cost_model.route(facility.facility_id, destination)
                if distance <= self.max_distance_miles:
                    g.add_edge(
                        f"facility:{facility.facility_id}", f"destination:{destination}",
                        edge_type="COVERS",
                        distance=distance,
                        unit_cost=cost,
                    )

    # ═══════════════════════════════════════════════════════════════════════
    # QUERY METHODS
    # ═══════════════════════════════════════════════════════════════════════

    def covered_destinations(self, facility_id: str) -> set[str]:
        node = f"facility:{facility_id}"
        if node not in self.graph:
            return set()
        return {self.graph.nodes[target]["destination"]
                for _, target in self.graph.out_edges(node)}

    def demand_of(self, destinations: Iterable[str]) -> float:
        return sum(self.graph.nodes[f"destination:{d}"]["demand"] for d in destinations)

    def coverage_share(self, facility_ids: Iterable[str]) -> float:
        """Fraction of total demand within range of at least one given facility."""
        total = self.demand_of(self._all_destinations())
        if total <= 0:
            return 1.0
        covered = set()
        for fid in facility_ids:
            covered |= self.covered_destinations(fid)
        return self.demand_of(covered) / total

    def impact_analysis(self, facility_id: str, open_ids: Iterable[str]) -> list[str]:
        """Destinations that lose ALL in-range coverage if this facility closes.

        Only destinations currently covered by facility_id are considered;
        the rest of open_ids are the alternatives that could still serve them.
        """
        others = [fid for fid in open_ids if fid != facility_id]
        still_covered = set()
        for fid in others:
            still_covered |= self.covered_destinations(fid)
        return sorted(self.covered_destinations(facility_id) - still_covered)

    def greedy_cover_order(self, candidates: Iterable[str], tie_break: Mapping[str, float],
                           already_open: Iterable[str] = ()) -> list[str]:
        """Order candidates by marginal uncovered demand they bring into range.

        Each pick maximizes newly covered demand; ties go to the lower
        tie_break value (e.g. cost per unit capacity), then the facility id.
        Once nothing adds coverage, the remaining candidates follow in
        tie_break order.
        """
        covered = set()
        for fid in already_open:
            covered |= self.covered_destinations(fid)
        pool = sorted(set(candidates))
        order = []
        while pool:
            best = min(
                pool,
                key=lambda fid: (
                    -self.demand_of(self.covered_destinations(fid) - covered),
                    tie_break.get(fid, float("inf")),
                    fid,
                ),
            )
            order.append(best)
            covered |= self.covered_destinations(best)
            pool.remove(best)
        return order

    def _all_destinations(self) -> list[str]:
        return [d["destination"] for _, d in self.graph.nodes(data=True)
                if d.get("node_type") == "destination"]
