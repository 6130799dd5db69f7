# =============================================================================
# PIPEGAP v1.0.0 -- CONTRACT MATCHER
# File:   pipegap/analysis/contract_matcher.py
# =============================================================================
#
# SCOPE
# -----
# For every transition A->B computes the subjects B requires but cannot
# obtain:
#
#   available(B) = U over predecessors P of B of
#                    writes(P) | passthrough(P) | (available(P) & cardinal)
#
#   Gap(A->B)    = required(B) - (available(B) | capabilities(B))
#
# Cardinal fields propagate transitively. Non-cardinal fields are visible
# one hop downstream of the component that emits them, never further.
# Capabilities are held, not transmitted.
#
# UNCLEAR components have empty required and available sets and emit
# nothing, so they can neither close nor open a gap on their own.
#
# FIXED POINT
# -----------
# Rounds are Jacobi-style: each round recomputes every component from the
# previous round's snapshot, so the result is independent of visiting
# order. Sets only grow. A well-formed graph stabilises within
# |components| rounds; the cap is |components| + 1 and CycleDivergence is
# raised if the snapshot is still changing there.
#
# DETERMINISM
# -----------
# DET-01  Pure set algebra over a sealed model. No randomness, no IO.
# DET-02  Output ordered by sorted transition; independent of insertion order.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from pipegap.core.exceptions import CycleDivergence, SchemaViolation
from pipegap.core.topology import Subject, TopologyModel, Transition
from pipegap.utils.constants import FIXED_POINT_CAP_OFFSET


# =============================================================================
# SECTION 1 -- RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class TransitionGap:
    """Unclassified gap: the raw set difference on one transition."""
    transition: Transition
    missing:    FrozenSet[Subject]


@dataclass(frozen=True)
class MatchResult:
    """
    Output of one Contract Matcher pass.

    availability : component id -> field ids available on arrival.
    iterations   : fixed-point rounds executed, confirming round included.
    gaps         : non-empty transition gaps, sorted by transition.
    """
    availability: Mapping[str, FrozenSet[str]]
    iterations:   int
    gaps:         Tuple[TransitionGap, ...]

    def available_fields(self, component_id: str) -> FrozenSet[str]:
        return self.availability.get(component_id, frozenset())

    def gap_for(self, transition: Transition) -> FrozenSet[Subject]:
        for gap in self.gaps:
            if gap.transition == transition:
                return gap.missing
        return frozenset()


# =============================================================================
# SECTION 2 -- AVAILABILITY FIXED POINT
# =============================================================================

def _require_sealed(topology: TopologyModel) -> None:
    if not topology.sealed:
        raise SchemaViolation(
            location=topology.name,
            detail="topology must be validated before analysis",
        )


def fixed_point_cap(topology: TopologyModel) -> int:
    return len(topology.component_ids) + FIXED_POINT_CAP_OFFSET


def compute_availability(
    topology: TopologyModel,
    max_iterations: Optional[int] = None,
) -> Tuple[Dict[str, FrozenSet[str]], int]:
    """
    Run the availability fixed point.

    Returns (availability, rounds). Raises CycleDivergence if the snapshot
    still changes after max_iterations rounds (default |components| + 1).
    """
    _require_sealed(topology)
    cap = fixed_point_cap(topology) if max_iterations is None else max_iterations
    if cap < 1:
        raise ValueError("max_iterations must be >= 1; got: {}".format(cap))

    cardinal = topology.cardinal_fields
    component_ids = topology.component_ids
    predecessors = {cid: sorted(topology.predecessors(cid)) for cid in component_ids}
    components = topology.components

    current: Dict[str, FrozenSet[str]] = {cid: frozenset() for cid in component_ids}
    for round_number in range(1, cap + 1):
        following: Dict[str, FrozenSet[str]] = {}
        for cid in component_ids:
            if components[cid].unclear:
                following[cid] = frozenset()
                continue
            arriving: set = set()
            for pid in predecessors[cid]:
                arriving |= components[pid].emitted_fields
                arriving |= current[pid] & cardinal
            following[cid] = frozenset(arriving)
        if following == current:
            return current, round_number
        previous, current = current, following

    growing = [cid for cid in component_ids if current[cid] != previous[cid]]
    raise CycleDivergence(iterations=cap, cap=cap, growing=growing)


def available_subjects(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
    component_id: str,
) -> FrozenSet[Subject]:
    """Fields arriving at the component plus the capabilities it holds."""
    component = topology.component(component_id)
    if component.unclear:
        return frozenset()
    fields = availability.get(component_id, frozenset())
    return frozenset(
        [Subject.field(f) for f in fields]
        + [Subject.capability(c) for c in component.held_capabilities]
    )


def compute_gap(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
    transition: Transition,
) -> FrozenSet[Subject]:
    """required(target) - available(target)."""
    target = topology.component(transition.target)
    return target.required - available_subjects(topology, availability, target.id)


# =============================================================================
# SECTION 3 -- PUBLIC ENTRY POINT
# =============================================================================

def match_contracts(
    topology: TopologyModel,
    max_iterations: Optional[int] = None,
) -> MatchResult:
    """
    Compute availability and every non-empty transition gap.

    Raises
    ------
    SchemaViolation  : topology not validated.
    CycleDivergence  : fixed point did not stabilise within the cap.
    """
    availability, rounds = compute_availability(topology, max_iterations)
    gaps: List[TransitionGap] = []
    for transition in topology.transitions:
        missing = compute_gap(topology, availability, transition)
        if missing:
            gaps.append(TransitionGap(transition=transition, missing=missing))
    return MatchResult(
        availability=MappingProxyType(dict(availability)),
        iterations=rounds,
        gaps=tuple(gaps),
    )


__all__ = [
    "TransitionGap",
    "MatchResult",
    "fixed_point_cap",
    "compute_availability",
    "available_subjects",
    "compute_gap",
    "match_contracts",
]
