# pipegap/core/records.py
# Version: 1.0.0
# Value records exchanged between the analysis phases and with the
# external driver: gaps, fixes and deliberation verdicts.
#
# All records are frozen dataclasses. Enumerations inherit from str so
# that Severity.CRITICAL == "CRITICAL" and serialisation needs no enum
# machinery.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple, Union

from pipegap.core.topology import Subject, Transition


# =============================================================================
# SECTION 1 -- SEVERITY
# =============================================================================

class Severity(str, Enum):
    """
    Severity tier of a gap.

    CRITICAL -- a field feeding a validation/grounding node is missing.
    HIGH     -- a capability the component would invoke is absent.
    MEDIUM   -- functional degradation only (cardinal field missing).
    LOW      -- anything else.
    """
    CRITICAL = "CRITICAL"
    HIGH     = "HIGH"
    MEDIUM   = "MEDIUM"
    LOW      = "LOW"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW:      0,
    Severity.MEDIUM:   1,
    Severity.HIGH:     2,
    Severity.CRITICAL: 3,
}


def max_severity(severities: Iterable[Severity]) -> Severity:
    """Highest severity in the iterable; LOW for an empty one."""
    result = Severity.LOW
    for severity in severities:
        if severity.rank > result.rank:
            result = severity
    return result


# =============================================================================
# SECTION 2 -- GAP
# =============================================================================

@dataclass(frozen=True)
class Gap:
    """
    Required-but-unavailable subjects on one transition.

    Fields
    ------
    transition : The transition the gap is reported on. For a cycle-scoped
                 gap this is the first transition inside the cycle.
    missing    : Missing fields and capabilities.
    pattern    : Pattern id from the rule table, or UNCLASSIFIED.
    severity   : Severity tier.
    cycle      : Member ids for a cycle-scoped gap, empty otherwise.
    flagged    : True when the gap touches an UNCLEAR component.

    Identity for diffing is `key`; pattern and severity are attributes.
    """
    transition: Transition
    missing:    FrozenSet[Subject]
    pattern:    str
    severity:   Severity
    cycle:      FrozenSet[str] = frozenset()
    flagged:    bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "missing", frozenset(self.missing))
        object.__setattr__(self, "cycle", frozenset(self.cycle))

    @property
    def key(self) -> Tuple[Transition, FrozenSet[Subject], FrozenSet[str]]:
        return (self.transition, self.missing, self.cycle)

    @property
    def sort_key(self) -> tuple:
        return (
            -self.severity.rank,
            self.transition,
            tuple(sorted(self.missing)),
            tuple(sorted(self.cycle)),
        )

    def describe(self) -> str:
        scope = " cycle=" + ",".join(sorted(self.cycle)) if self.cycle else ""
        return (
            "[" + self.severity.value + "] "
            + str(self.transition)
            + " missing " + ",".join(str(s) for s in sorted(self.missing))
            + " (" + self.pattern + ")"
            + scope
            + (" FLAGGED" if self.flagged else "")
        )


def sort_gaps(gaps: Iterable[Gap]) -> Tuple[Gap, ...]:
    """Canonical Gap Report order: severity descending, then transition."""
    return tuple(sorted(gaps, key=lambda g: g.sort_key))


# =============================================================================
# SECTION 3 -- FIX
# =============================================================================

class Action(str, Enum):
    REMOVE   = "REMOVE"
    ADD      = "ADD"
    RELOCATE = "RELOCATE"


class Slot(str, Enum):
    """Contract slot a fix edits."""
    READS        = "reads"
    WRITES       = "writes"
    PASSTHROUGH  = "passthrough"
    CAPABILITIES = "capabilities"


@dataclass(frozen=True)
class Fix:
    """
    A proposed edit to the topology.

    target      : Component id, or a Transition (edits act on its source).
    action      : REMOVE / ADD / RELOCATE.
    subject     : Field or capability being moved.
    rationale   : Free text carried through unchanged.
    slot        : Contract slot. None lets the applier pick the default
                  (capabilities for capability subjects; writes for ADD of a
                  field on a component, passthrough for ADD on a transition).
    destination : Receiving component for RELOCATE.
    """
    target:      Union[str, Transition]
    action:      Action
    subject:     Subject
    rationale:   str = ""
    slot:        Optional[Slot] = None
    destination: Optional[str] = None

    @property
    def component_id(self) -> str:
        if isinstance(self.target, Transition):
            return self.target.source
        return self.target

    def __str__(self) -> str:
        text = self.action.value + "(" + str(self.subject) + ", " + str(self.target)
        if self.slot is not None:
            text += "." + self.slot.value
        if self.destination is not None:
            text += " -> " + self.destination
        return text + ")"


# =============================================================================
# SECTION 4 -- DELIBERATION
# =============================================================================

class Verdict(str, Enum):
    PROCEED    = "PROCEED"
    REDESIGNED = "REDESIGNED"
    FLAGGED    = "FLAGGED"


class FixState(str, Enum):
    """PROPOSED -> EVALUATING -> {PROCEED | REDESIGNED | FLAGGED}."""
    PROPOSED   = "PROPOSED"
    EVALUATING = "EVALUATING"
    PROCEED    = "PROCEED"
    REDESIGNED = "REDESIGNED"
    FLAGGED    = "FLAGGED"


@dataclass(frozen=True)
class DeliberationVerdict:
    """
    Outcome of deliberating one proposed fix.

    fix        : The fix to apply. For REDESIGNED it is the rewritten
                 RELOCATE; otherwise the proposal itself.
    verdict    : PROCEED / REDESIGNED / FLAGGED.
    detail     : Deterministic explanation string.
    proposed   : The fix as originally proposed.
    candidates : Plausible owners surfaced for FLAGGED relocations.
    trail      : State history, always starting PROPOSED, EVALUATING.
    """
    fix:        Fix
    verdict:    Verdict
    detail:     str
    proposed:   Fix
    candidates: Tuple[str, ...] = ()
    trail:      Tuple[FixState, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.verdict in (Verdict.PROCEED, Verdict.REDESIGNED)

    @property
    def relocation_target(self) -> Optional[str]:
        if self.verdict is Verdict.REDESIGNED:
            return self.fix.destination
        return None


__all__ = [
    "Severity",
    "max_severity",
    "Gap",
    "sort_gaps",
    "Action",
    "Slot",
    "Fix",
    "Verdict",
    "FixState",
    "DeliberationVerdict",
]
