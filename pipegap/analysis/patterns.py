# =============================================================================
# PIPEGAP v1.0.0 -- STRUCTURAL FAILURE TAXONOMY
# File:   pipegap/analysis/patterns.py
# =============================================================================
#
# SCOPE
# -----
# The failure taxonomy as data: an ordered table of rules, each binding a
# predicate over a gap's structural context to a pattern id. The classifier
# walks the table top to bottom and the first matching rule wins.
#
# The table is built once at import and never mutated. Its size is not a
# constant of the algorithm: callers may pass any ordered subset
# (select_patterns) or an extended table of their own.
#
# SEVERITY
# --------
# Rules normally defer to the fixed severity ranking in the classifier.
# A rule may carry an explicit severity_override; none of the default
# rules do.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Mapping, Optional, Sequence, Tuple

from pipegap.core.records import Severity
from pipegap.core.topology import Component, Subject, TopologyModel, Transition, is_validation_node
from pipegap.utils.constants import VALIDATION_CAPABILITIES, VALIDATION_ROLES


# =============================================================================
# SECTION 1 -- GAP CONTEXT
# =============================================================================

@dataclass(frozen=True)
class GapContext:
    """
    Everything a rule predicate may inspect about one transition gap.

    Producers exclude UNCLEAR components and the target itself: an
    unclear contract proves nothing, and a component cannot feed its own
    input on the same transition.
    """
    topology:     TopologyModel
    availability: Mapping[str, FrozenSet[str]]
    transition:   Transition
    source:       Component
    target:       Component
    missing:      FrozenSet[Subject]
    validation_roles:        FrozenSet[str] = VALIDATION_ROLES
    validation_capabilities: FrozenSet[str] = VALIDATION_CAPABILITIES

    @property
    def missing_fields(self) -> Tuple[str, ...]:
        return tuple(sorted(s.id for s in self.missing if s.is_field))

    @property
    def missing_capabilities(self) -> Tuple[str, ...]:
        return tuple(sorted(s.id for s in self.missing if not s.is_field))

    @property
    def target_validates(self) -> bool:
        return is_validation_node(
            self.target, self.validation_roles, self.validation_capabilities
        )

    def producers(self, field_id: str) -> FrozenSet[str]:
        return frozenset(
            c.id for c in self.topology.components.values()
            if not c.unclear and c.id != self.target.id and field_id in c.writes
        )

    def upstream_producers(self, field_id: str) -> FrozenSet[str]:
        return self.producers(field_id) & self.topology.ancestors(self.target.id)

    def holders(self, capability_id: str) -> FrozenSet[str]:
        return frozenset(
            c.id for c in self.topology.components.values()
            if not c.unclear and c.id != self.target.id and capability_id in c.capabilities
        )

    def source_received(self, field_id: str) -> bool:
        return field_id in self.availability.get(self.source.id, frozenset())


# =============================================================================
# SECTION 2 -- PREDICATES
# =============================================================================

def _opaque_handoff(ctx: GapContext) -> bool:
    return ctx.source.unclear


def _cardinal_breach(ctx: GapContext) -> bool:
    return any(
        ctx.topology.is_cardinal(f) and ctx.upstream_producers(f)
        for f in ctx.missing_fields
    )


def _stripped_grounding(ctx: GapContext) -> bool:
    return ctx.target_validates and any(
        ctx.upstream_producers(f) for f in ctx.missing_fields
    )


def _ungrounded_validation(ctx: GapContext) -> bool:
    return ctx.target_validates and any(
        not ctx.upstream_producers(f) for f in ctx.missing_fields
    )


def _toothless_validator(ctx: GapContext) -> bool:
    return ctx.target_validates and bool(ctx.missing_capabilities)


def _procrustean_fix(ctx: GapContext) -> bool:
    return any(
        f in ctx.target.writes and not ctx.upstream_producers(f)
        for f in ctx.missing_fields
    )


def _silent_drop(ctx: GapContext) -> bool:
    return any(ctx.source_received(f) for f in ctx.missing_fields)


def _temporal_inversion(ctx: GapContext) -> bool:
    downstream = ctx.topology.descendants(ctx.target.id)
    for f in ctx.missing_fields:
        producers = ctx.producers(f)
        if producers and not ctx.upstream_producers(f) and producers <= downstream:
            return True
    return False


def _sibling_isolation(ctx: GapContext) -> bool:
    downstream = ctx.topology.descendants(ctx.target.id)
    for f in ctx.missing_fields:
        producers = ctx.producers(f)
        if producers and not ctx.upstream_producers(f) and not producers <= downstream:
            return True
    return False


def _distant_producer(ctx: GapContext) -> bool:
    return any(
        not ctx.topology.is_cardinal(f) and ctx.upstream_producers(f)
        for f in ctx.missing_fields
    )


def _misallocated_capability(ctx: GapContext) -> bool:
    return any(ctx.holders(c) for c in ctx.missing_capabilities)


def _phantom_capability(ctx: GapContext) -> bool:
    return any(not ctx.holders(c) for c in ctx.missing_capabilities)


def _orphan_requirement(ctx: GapContext) -> bool:
    return any(not ctx.producers(f) for f in ctx.missing_fields)


# =============================================================================
# SECTION 3 -- RULE TABLE
# =============================================================================

class PatternScope(str, Enum):
    TRANSITION = "TRANSITION"
    CYCLE      = "CYCLE"


@dataclass(frozen=True)
class PatternRule:
    """
    One taxonomy entry.

    Transition-scoped rules need a predicate. The cycle-scoped rule has
    none: it is evaluated once per strongly connected component.
    """
    pattern_id:        str
    name:              str
    description:       str
    predicate:         Optional[Callable[[GapContext], bool]] = None
    scope:             PatternScope = PatternScope.TRANSITION
    severity_override: Optional[Severity] = None

    def matches(self, ctx: GapContext) -> bool:
        if self.scope is not PatternScope.TRANSITION or self.predicate is None:
            return False
        return bool(self.predicate(ctx))


SELF_REFERENTIAL_VALIDATION: str = "SELF_REFERENTIAL_VALIDATION"

DEFAULT_PATTERN_TABLE: Tuple[PatternRule, ...] = (
    PatternRule(
        "OPAQUE_HANDOFF", "Opaque Handoff",
        "The upstream component's contract could not be extracted.",
        _opaque_handoff,
    ),
    PatternRule(
        "CARDINAL_BREACH", "Cardinal Breach",
        "A cardinal field produced upstream is lost on the way.",
        _cardinal_breach,
    ),
    PatternRule(
        "STRIPPED_GROUNDING", "Stripped Grounding",
        "A validator lacks evidence that exists upstream but was dropped.",
        _stripped_grounding,
    ),
    PatternRule(
        "UNGROUNDED_VALIDATION", "Ungrounded Validation",
        "A validator requires evidence that nothing upstream produces.",
        _ungrounded_validation,
    ),
    PatternRule(
        "TOOTHLESS_VALIDATOR", "Toothless Validator",
        "A validator lacks a capability its checks invoke.",
        _toothless_validator,
    ),
    PatternRule(
        "PROCRUSTEAN_FIX", "Procrustean Fix",
        "A component rewrites a field it never receives, fabricating its own input.",
        _procrustean_fix,
    ),
    PatternRule(
        "SILENT_DROP", "Silent Drop",
        "The upstream component received the field but neither writes nor forwards it.",
        _silent_drop,
    ),
    PatternRule(
        "TEMPORAL_INVERSION", "Temporal Inversion",
        "The field is produced only downstream of the component that needs it.",
        _temporal_inversion,
    ),
    PatternRule(
        "SIBLING_ISOLATION", "Sibling Isolation",
        "The field is produced only on a parallel branch.",
        _sibling_isolation,
    ),
    PatternRule(
        "DISTANT_PRODUCER", "Distant Producer",
        "A non-cardinal field is produced more than one hop upstream.",
        _distant_producer,
    ),
    PatternRule(
        "MISALLOCATED_CAPABILITY", "Misallocated Capability",
        "The capability exists, but on another component.",
        _misallocated_capability,
    ),
    PatternRule(
        "PHANTOM_CAPABILITY", "Phantom Capability",
        "The capability is needed but held by no component.",
        _phantom_capability,
    ),
    PatternRule(
        "ORPHAN_REQUIREMENT", "Orphan Requirement",
        "The field is required but produced nowhere in the topology.",
        _orphan_requirement,
    ),
    PatternRule(
        SELF_REFERENTIAL_VALIDATION, "Self-Referential Validation",
        "A cycle with no external input validates only what it produced itself.",
        scope=PatternScope.CYCLE,
    ),
)


def validate_pattern_table(table: Sequence[PatternRule]) -> Tuple[PatternRule, ...]:
    """
    Check a caller-supplied table and return it as a tuple.

    Raises ValueError on duplicate ids, a transition rule without a
    predicate, or more than one cycle-scoped rule.
    """
    seen: set = set()
    cycle_rules = 0
    for rule in table:
        if rule.pattern_id in seen:
            raise ValueError("duplicate pattern id: {}".format(rule.pattern_id))
        seen.add(rule.pattern_id)
        if rule.scope is PatternScope.TRANSITION and rule.predicate is None:
            raise ValueError(
                "transition rule {} has no predicate".format(rule.pattern_id)
            )
        if rule.scope is PatternScope.CYCLE:
            cycle_rules += 1
    if cycle_rules > 1:
        raise ValueError("at most one cycle-scoped rule is allowed")
    return tuple(table)


def select_patterns(*pattern_ids: str) -> Tuple[PatternRule, ...]:
    """Subset of the default table, keeping the default priority order."""
    known = {rule.pattern_id for rule in DEFAULT_PATTERN_TABLE}
    unknown = sorted(set(pattern_ids) - known)
    if unknown:
        raise ValueError("unknown pattern id(s): {}".format(unknown))
    wanted = set(pattern_ids)
    return tuple(r for r in DEFAULT_PATTERN_TABLE if r.pattern_id in wanted)


__all__ = [
    "GapContext",
    "PatternScope",
    "PatternRule",
    "SELF_REFERENTIAL_VALIDATION",
    "DEFAULT_PATTERN_TABLE",
    "validate_pattern_table",
    "select_patterns",
]
