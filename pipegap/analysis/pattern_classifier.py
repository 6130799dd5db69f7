# =============================================================================
# PIPEGAP v1.0.0 -- PATTERN CLASSIFIER
# File:   pipegap/analysis/pattern_classifier.py
# =============================================================================
#
# SCOPE
# -----
# Assigns a pattern id and a severity tier to every transition gap found
# by the contract matcher, and emits one cycle-scoped gap per cycle
# that can only validate its own output.
#
# MATCH POLICY
# ------------
# First match wins, in table order. No match raises ClassificationAmbiguity,
# which is caught here and recorded as UNCLASSIFIED / MEDIUM.
#
# SEVERITY RANKING (per missing subject; the gap takes the maximum)
# -----------------------------------------------------------------
#   field required by a validation node  -> CRITICAL
#   capability                           -> HIGH
#   cardinal field                       -> MEDIUM
#   anything else                        -> LOW
# A rule's severity_override replaces the ranking. Gaps touching an
# UNCLEAR component are then raised to at least HIGH and flagged.
#
# CYCLE-LOCAL VALIDATION
# ----------------------
# A member of a non-trivial SCC none of whose reads is handed in by a
# transition entering the SCC from outside is served only by the cycle
# itself. An entry edge that supplies nothing the member reads does not
# count. Each such SCC yields exactly one gap keyed by the member set,
# whose missing set is the fields those members read from inside. A cycle
# whose members read nothing yields no gap.
# =============================================================================

from __future__ import annotations

from typing import FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from pipegap.analysis.contract_matcher import MatchResult, match_contracts
from pipegap.analysis.patterns import (
    DEFAULT_PATTERN_TABLE,
    GapContext,
    PatternRule,
    PatternScope,
    validate_pattern_table,
)
from pipegap.core.exceptions import ClassificationAmbiguity
from pipegap.core.records import Gap, Severity, max_severity, sort_gaps
from pipegap.core.topology import Subject, TopologyModel, Transition, is_validation_node
from pipegap.utils.constants import (
    UNCLASSIFIED,
    VALIDATION_CAPABILITIES,
    VALIDATION_ROLES,
)


# =============================================================================
# SECTION 1 -- SEVERITY
# =============================================================================

def subject_severity(
    topology: TopologyModel,
    subject: Subject,
    feeds_validation: bool,
) -> Severity:
    if subject.is_field:
        if feeds_validation:
            return Severity.CRITICAL
        if topology.is_cardinal(subject.id):
            return Severity.MEDIUM
        return Severity.LOW
    return Severity.HIGH


def rank_severity(
    topology: TopologyModel,
    missing: Iterable[Subject],
    feeds_validation: bool,
) -> Severity:
    return max_severity(
        subject_severity(topology, s, feeds_validation) for s in missing
    )


def _finalise(
    severity: Severity,
    rule: Optional[PatternRule],
    touches_unclear: bool,
) -> Tuple[Severity, bool]:
    if rule is not None and rule.severity_override is not None:
        severity = rule.severity_override
    if touches_unclear:
        severity = max_severity((severity, Severity.HIGH))
    return severity, touches_unclear


# =============================================================================
# SECTION 2 -- TRANSITION GAPS
# =============================================================================

def match_rule(ctx: GapContext, table: Sequence[PatternRule]) -> PatternRule:
    """First transition-scoped rule whose predicate holds."""
    for rule in table:
        if rule.matches(ctx):
            return rule
    raise ClassificationAmbiguity(
        transition=str(ctx.transition),
        missing=[str(s) for s in ctx.missing],
    )


def classify_transition_gap(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
    transition: Transition,
    missing: FrozenSet[Subject],
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    validation_roles: FrozenSet[str] = VALIDATION_ROLES,
    validation_capabilities: FrozenSet[str] = VALIDATION_CAPABILITIES,
) -> Gap:
    source = topology.component(transition.source)
    target = topology.component(transition.target)
    ctx = GapContext(
        topology=topology,
        availability=availability,
        transition=transition,
        source=source,
        target=target,
        missing=missing,
        validation_roles=validation_roles,
        validation_capabilities=validation_capabilities,
    )
    try:
        rule: Optional[PatternRule] = match_rule(ctx, table)
        pattern = rule.pattern_id
        severity = rank_severity(topology, missing, ctx.target_validates)
    except ClassificationAmbiguity:
        rule = None
        pattern = UNCLASSIFIED
        severity = Severity.MEDIUM

    severity, flagged = _finalise(severity, rule, source.unclear or target.unclear)
    return Gap(
        transition=transition,
        missing=missing,
        pattern=pattern,
        severity=severity,
        flagged=flagged,
    )


# =============================================================================
# SECTION 3 -- CYCLE-SCOPED GAPS
# =============================================================================

def external_supply(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
    cycle: FrozenSet[str],
) -> FrozenSet[str]:
    """Fields handed into the cycle by transitions entering it from outside."""
    cardinal = topology.cardinal_fields
    supplied: set = set()
    for t in topology.transitions:
        if t.target in cycle and t.source not in cycle:
            source = topology.component(t.source)
            supplied |= source.emitted_fields
            supplied |= availability.get(source.id, frozenset()) & cardinal
    return frozenset(supplied)


def self_served_fields(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
    cycle: FrozenSet[str],
) -> FrozenSet[str]:
    """
    Fields read inside the cycle by members that get none of their reads
    from outside it. Empty when every reading member has an outside source.
    """
    supplied = external_supply(topology, availability, cycle)
    served: set = set()
    for cid in sorted(cycle):
        member = topology.component(cid)
        if member.required_fields & supplied:
            continue
        served |= member.required_fields & availability.get(cid, frozenset())
    return frozenset(served)


def self_referential_cycles(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
) -> Tuple[Tuple[FrozenSet[str], FrozenSet[str]], ...]:
    """(cycle, self-served fields) for every non-trivial SCC that validates its own output."""
    result: List[Tuple[FrozenSet[str], FrozenSet[str]]] = []
    for cycle in topology.cycles():
        served = self_served_fields(topology, availability, cycle)
        if served:
            result.append((cycle, served))
    return tuple(result)


def classify_cycles(
    topology: TopologyModel,
    availability: Mapping[str, FrozenSet[str]],
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    validation_roles: FrozenSet[str] = VALIDATION_ROLES,
    validation_capabilities: FrozenSet[str] = VALIDATION_CAPABILITIES,
) -> Tuple[Gap, ...]:
    rule = next((r for r in table if r.scope is PatternScope.CYCLE), None)
    if rule is None:
        return ()

    gaps: List[Gap] = []
    for cycle, served in self_referential_cycles(topology, availability):
        members = [topology.component(cid) for cid in sorted(cycle)]
        self_served = {Subject.field(f) for f in served}
        anchor = next(
            t for t in topology.transitions
            if t.source in cycle and t.target in cycle
        )
        validates = any(
            is_validation_node(m, validation_roles, validation_capabilities)
            for m in members
        )
        severity = rank_severity(topology, self_served, validates)
        severity, flagged = _finalise(
            severity, rule, any(m.unclear for m in members)
        )
        gaps.append(Gap(
            transition=anchor,
            missing=frozenset(self_served),
            pattern=rule.pattern_id,
            severity=severity,
            cycle=cycle,
            flagged=flagged,
        ))
    return tuple(gaps)


# =============================================================================
# SECTION 4 -- PUBLIC ENTRY POINTS
# =============================================================================

def classify_gaps(
    topology: TopologyModel,
    match_result: MatchResult,
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    validation_roles: FrozenSet[str] = VALIDATION_ROLES,
    validation_capabilities: FrozenSet[str] = VALIDATION_CAPABILITIES,
) -> Tuple[Gap, ...]:
    """
    Classify a matcher result into an ordered Gap Report.

    Order: severity descending, then transition, then missing subjects.
    """
    rules = validate_pattern_table(table)
    gaps: List[Gap] = [
        classify_transition_gap(
            topology,
            match_result.availability,
            raw.transition,
            raw.missing,
            rules,
            validation_roles,
            validation_capabilities,
        )
        for raw in match_result.gaps
    ]
    gaps.extend(classify_cycles(
        topology,
        match_result.availability,
        rules,
        validation_roles,
        validation_capabilities,
    ))
    return sort_gaps(gaps)


def run_gap_analysis(
    topology: TopologyModel,
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    max_iterations: Optional[int] = None,
) -> Tuple[Gap, ...]:
    """Contract Matcher followed by Pattern Classifier."""
    return classify_gaps(topology, match_contracts(topology, max_iterations), table)


__all__ = [
    "subject_severity",
    "rank_severity",
    "match_rule",
    "classify_transition_gap",
    "external_supply",
    "self_served_fields",
    "self_referential_cycles",
    "classify_cycles",
    "classify_gaps",
    "run_gap_analysis",
]
