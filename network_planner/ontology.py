"""
Ontology Layer — typed facility entities and the Candidate Facility Registry.

Provides frozen dataclasses for expansion tiers and facility sites, plus a
CandidateRegistry class that holds the fixed universe of sites a run may
open (existing sites + candidate new sites) and offers the lookups and
semantic queries the allocator, optimizer and sweep need.

The registry is immutable: a sweep scenario that only considers N sites
gets its own registry from limit_to(), never a mutated shared one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

from network_planner.errors import ConfigurationError


# ═══════════════════════════════════════════════════════════════════════════════
# ENTITY DATACLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class FacilityKind(str, Enum):
    CANDIDATE = "candidate"
    EXISTING = "existing"


@dataclass(frozen=True)
class ExpansionTier:
    """A discrete, priced increment of capacity addable to an open facility."""
    name: str
    capacity_increment: float
    fixed_cost_per_year: float

    @property
    def cost_per_unit_capacity(self) -> float:
        return self.fixed_cost_per_year / self.capacity_increment


@dataclass(frozen=True)
class Facility:
    """A facility site with base capacity, expansion tiers and lease metadata."""
    facility_id: str
    base_capacity: float
    location: Optional[tuple] = None            # (lat, lng)
    expansion_tiers: tuple = ()                 # ordered ExpansionTier sequence
    kind: FacilityKind = FacilityKind.CANDIDATE
    fixed_cost_per_year: Optional[float] = None  # None -> config fixed_cost_per_facility
    lease_start_year: Optional[int] = None      # existing sites: year the current lease began
    closable: bool = True

    @property
    def is_existing(self) -> bool:
        return self.kind == FacilityKind.EXISTING

    def capacity_with_tiers(self, tiers_applied: int) -> float:
        """Base capacity plus the first `tiers_applied` expansion tiers."""
        return self.base_capacity + sum(
            t.capacity_increment for t in self.expansion_tiers[:tiers_applied])

    def tier_cost(self, tiers_applied: int) -> float:
        """Annual fixed cost of the first `tiers_applied` expansion tiers."""
        return sum(t.fixed_cost_per_year for t in self.expansion_tiers[:tiers_applied])

    def next_tier(self, tiers_applied: int) -> Optional[ExpansionTier]:
        if tiers_applied < len(self.expansion_tiers):
            return self.expansion_tiers[tiers_applied]
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# CANDIDATE FACILITY REGISTRY
# ═══════════════════════════════════════════════════════════════════════════════

class CandidateRegistry:
    """Ordered, immutable set of facility sites for one planning run.

    Iteration order is the listed order; it is what the "listed" sweep
    selection policy uses, so it is preserved by limit_to().
    """

    def __init__(self, facilities: Iterable[Facility]):
        self._facilities: dict[str, Facility] = {}
        for facility in facilities:
            if facility.facility_id in self._facilities:
                raise ConfigurationError("duplicate facility id", f"facilities.{facility.facility_id}")
            if facility.base_capacity < 0:
                raise ConfigurationError("base_capacity must be >= 0",
                                         f"facilities.{facility.facility_id}.base_capacity")
            self._facilities[facility.facility_id] = facility

    # ── Entity Lookups ─────────────────────────────────────────────────────────

    def __iter__(self) -> Iterator[Facility]:
        return iter(self._facilities.values())

    def __len__(self) -> int:
        return len(self._facilities)

    def __contains__(self, facility_id: str) -> bool:
        return facility_id in self._facilities

    def get(self, facility_id: str) -> Facility:
        try:
            return self._facilities[facility_id]
        except KeyError:
            raise ConfigurationError("unknown facility id", f"facilities.{facility_id}") from None

    @property
    def ids(self) -> list[str]:
        return list(self._facilities)

    # ── Semantic Queries ───────────────────────────────────────────────────────

    def existing(self) -> list[Facility]:
        return [f for f in self._facilities.values() if f.is_existing]

    def annual_fixed_cost(self, facility_id: str, default: float, tiers_applied: int = 0) -> float:
        """Lease/fixed cost per year, including any applied expansion tiers."""
        facility = self.get(facility_id)
        base = facility.fixed_cost_per_year if facility.fixed_cost_per_year is not None else default
        return base + facility.tier_cost(tiers_applied)

    def cost_per_unit_capacity(self, facility_id: str, default: float) -> float:
        """Annual fixed cost divided by base capacity (inf for zero-capacity sites)."""
        facility = self.get(facility_id)
        if facility.base_capacity <= 0:
            return float("inf")
        return self.annual_fixed_cost(facility_id, default) / facility.base_capacity

    def limit_to(self, facility_ids: Iterable[str]) -> "CandidateRegistry":
        """New registry holding only the given sites, in listed order."""
        keep = set(facility_ids)
        missing = keep - set(self._facilities)
        if missing:
            raise ConfigurationError("unknown facility id", f"facilities.{sorted(missing)[0]}")
        return CandidateRegistry(f for f in self._facilities.values() if f.facility_id in keep)
