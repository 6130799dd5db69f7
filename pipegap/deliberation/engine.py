# =============================================================================
# PIPEGAP v1.0.0 -- DELIBERATION ENGINE
# File:   pipegap/deliberation/engine.py
# =============================================================================
#
# SCOPE
# -----
# Evaluates proposed fixes against the whole graph before anything is
# applied. Each fix walks a small state machine:
#
#     PROPOSED -> EVALUATING -> { PROCEED | REDESIGNED | FLAGGED }
#
# REMOVE of subject S from component C
#   1. dependents(S): components D != C whose required set contains S.
#      A capability dependent may sit anywhere in the graph; a field
#      dependent must be reachable from C. Whether D currently receives S,
#      or holds its own copy, does not matter.
#   2. no dependents                  -> PROCEED
#   3. dependents, one plausible owner -> REDESIGNED as RELOCATE(S, C -> owner)
#      several or none                -> FLAGGED, candidates surfaced
#   An UNCLEAR component downstream of C (or C itself) makes dependents
#   unknowable: DeliberationUncertain, recovered as FLAGGED.
#
# ADD, RELOCATE as proposed, and REMOVE from a component's own reads skip
# dependents analysis. They PROCEED unless the edited model breaks an
# invariant (e.g. passthrough/writes overlap), in which case FLAGGED.
#
# A REDESIGNED fix is re-validated on a scratch model before it is
# returned. A breach there is a defect in this engine, not bad input, and
# the SchemaViolation propagates.
#
# The engine reads one sealed model and never mutates it.
# =============================================================================

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pipegap.core.exceptions import DeliberationUncertain, SchemaViolation
from pipegap.core.records import (
    Action,
    DeliberationVerdict,
    Fix,
    FixState,
    Slot,
    Verdict,
)
from pipegap.core.topology import Subject, TopologyModel, Transition
from pipegap.deliberation.applier import apply_fix


_ALLOWED_STATE_TRANSITIONS: Dict[FixState, FrozenSet[FixState]] = {
    FixState.PROPOSED:   frozenset({FixState.EVALUATING}),
    FixState.EVALUATING: frozenset({FixState.PROCEED, FixState.REDESIGNED, FixState.FLAGGED}),
    FixState.PROCEED:    frozenset(),
    FixState.REDESIGNED: frozenset(),
    FixState.FLAGGED:    frozenset(),
}

_FINAL_STATE = {
    Verdict.PROCEED:    FixState.PROCEED,
    Verdict.REDESIGNED: FixState.REDESIGNED,
    Verdict.FLAGGED:    FixState.FLAGGED,
}


def _advance(trail: List[FixState], state: FixState) -> None:
    if state not in _ALLOWED_STATE_TRANSITIONS[trail[-1]]:
        raise RuntimeError(
            "illegal fix state transition {} -> {}".format(trail[-1].value, state.value)
        )
    trail.append(state)


class _Outcome:
    """Mutable scratch result of one evaluation."""

    __slots__ = ("verdict", "fix", "detail", "candidates")

    def __init__(
        self,
        verdict: Verdict,
        fix: Fix,
        detail: str,
        candidates: Tuple[str, ...] = (),
    ) -> None:
        self.verdict = verdict
        self.fix = fix
        self.detail = detail
        self.candidates = candidates


class DeliberationEngine:
    """
    Whole-graph evaluation of proposed fixes over one sealed topology.

    Usage:
        engine = DeliberationEngine(topology)
        verdicts = engine.deliberate(fixes)
    """

    def __init__(self, topology: TopologyModel) -> None:
        if not topology.sealed:
            raise SchemaViolation(
                location=topology.name,
                detail="topology must be validated before deliberation",
            )
        self._topology = topology

    @property
    def topology(self) -> TopologyModel:
        return self._topology

    # -----------------------------------------------------------------------
    # public API
    # -----------------------------------------------------------------------

    def evaluate(self, fix: Fix) -> DeliberationVerdict:
        trail: List[FixState] = [FixState.PROPOSED]
        _advance(trail, FixState.EVALUATING)

        rejection = self._reference_problem(fix)
        if rejection is not None:
            outcome = _Outcome(Verdict.FLAGGED, fix, rejection)
        else:
            try:
                if fix.action is Action.REMOVE and fix.slot is not Slot.READS:
                    outcome = self._evaluate_remove(fix)
                else:
                    outcome = self._evaluate_local(fix)
            except DeliberationUncertain as exc:
                outcome = _Outcome(Verdict.FLAGGED, fix, exc.reason, exc.candidates)

        _advance(trail, _FINAL_STATE[outcome.verdict])
        return DeliberationVerdict(
            fix=outcome.fix,
            verdict=outcome.verdict,
            detail=outcome.detail,
            proposed=fix,
            candidates=tuple(outcome.candidates),
            trail=tuple(trail),
        )

    def deliberate(self, fixes: Iterable[Fix]) -> Tuple[DeliberationVerdict, ...]:
        """Evaluate each fix independently against the same snapshot."""
        return tuple(self.evaluate(fix) for fix in fixes)

    def dependents(self, component_id: str, subject: Subject) -> Tuple[str, ...]:
        """
        Components other than component_id whose required set contains
        subject. Field dependents must be reachable from component_id;
        capability dependents may sit anywhere. Sorted.

        Raises DeliberationUncertain when an UNCLEAR component could be
        affected.
        """
        topology = self._topology
        owner = topology.component(component_id)
        if owner.unclear:
            raise DeliberationUncertain(
                fix=component_id + ":" + str(subject),
                reason="contract of '" + component_id + "' is UNCLEAR",
            )
        downstream = topology.descendants(component_id)
        unclear_downstream = sorted(
            d for d in downstream
            if d != component_id and topology.component(d).unclear
        )
        if unclear_downstream:
            raise DeliberationUncertain(
                fix=component_id + ":" + str(subject),
                reason="requirements of UNCLEAR downstream component(s) "
                       + repr(unclear_downstream) + " are unknown",
                candidates=unclear_downstream,
            )

        others = [
            topology.component(cid) for cid in topology.component_ids
            if cid != component_id and not topology.component(cid).unclear
        ]
        if not subject.is_field:
            return tuple(d.id for d in others if subject.id in d.required_capabilities)
        return tuple(
            d.id for d in others
            if d.id in downstream and subject.id in d.required_fields
        )

    def owner_candidates(
        self,
        component_id: str,
        subject: Subject,
        dependents: Tuple[str, ...],
    ) -> Tuple[str, ...]:
        """
        Components able to own the subject on behalf of every dependent.

        Capabilities are not transmitted, so each dependent is its own
        candidate. A field owner must feed every dependent: as an immediate
        predecessor, or as any ancestor when the field is cardinal. Only the
        nearest such owners are kept.
        """
        topology = self._topology
        if not subject.is_field:
            return tuple(sorted(dependents))

        cardinal = topology.is_cardinal(subject.id)
        feeders: List[str] = []
        for cid in topology.component_ids:
            candidate = topology.component(cid)
            if cid == component_id or cid in dependents or candidate.unclear:
                continue
            if subject.id in candidate.passthrough:
                continue
            if all(
                cid in topology.predecessors(d)
                or (cardinal and cid in topology.ancestors(d))
                for d in dependents
            ):
                feeders.append(cid)

        nearest = [
            t for t in feeders
            if not any(
                other != t
                and other in topology.descendants(t)
                and t not in topology.descendants(other)
                for other in feeders
            )
        ]
        return tuple(nearest)

    # -----------------------------------------------------------------------
    # internals
    # -----------------------------------------------------------------------

    def _reference_problem(self, fix: Fix) -> Optional[str]:
        topology = self._topology
        if isinstance(fix.target, Transition):
            if not topology.has_transition(fix.target):
                return "unknown transition " + str(fix.target)
        elif fix.target not in topology.components:
            return "unknown component '" + str(fix.target) + "'"
        if fix.subject.is_field and fix.subject.id not in topology.fields:
            return "undeclared field '" + fix.subject.id + "'"
        if fix.slot is not None:
            if fix.subject.is_field == (fix.slot is Slot.CAPABILITIES):
                return "slot " + fix.slot.value + " does not hold " + fix.subject.kind.value.lower() + "s"
        if fix.action is Action.RELOCATE:
            if not fix.destination:
                return "RELOCATE without a destination"
            if fix.destination not in topology.components:
                return "unknown destination '" + fix.destination + "'"
        if fix.action in (Action.REMOVE, Action.RELOCATE) and not self._holds(fix):
            return str(fix.subject) + " is not present on '" + fix.component_id + "'"
        return None

    def _holds(self, fix: Fix) -> bool:
        component = self._topology.component(fix.component_id)
        subject = fix.subject
        if not subject.is_field:
            return subject.id in component.capabilities
        if fix.action is Action.REMOVE and fix.slot is not None:
            return subject.id in getattr(component, fix.slot.value)
        return subject.id in (component.writes | component.passthrough)

    def _evaluate_local(self, fix: Fix) -> _Outcome:
        try:
            apply_fix(self._topology, fix)
        except SchemaViolation as exc:
            return _Outcome(Verdict.FLAGGED, fix, "would break an invariant: " + exc.detail)
        return _Outcome(Verdict.PROCEED, fix, "local edit; invariants hold")

    def _evaluate_remove(self, fix: Fix) -> _Outcome:
        component_id = fix.component_id
        subject = fix.subject
        dependents = self.dependents(component_id, subject)
        if not dependents:
            return _Outcome(
                Verdict.PROCEED, fix,
                "no other component depends on " + str(subject),
            )

        candidates = self.owner_candidates(component_id, subject, dependents)
        if len(candidates) != 1:
            reason = (
                "owner of " + str(subject) + " for dependents "
                + repr(list(dependents))
                + (" is ambiguous" if candidates else " cannot be determined")
            )
            raise DeliberationUncertain(fix=str(fix), reason=reason, candidates=candidates)

        owner = candidates[0]
        relocation = Fix(
            target=component_id,
            action=Action.RELOCATE,
            subject=subject,
            rationale=(fix.rationale + " " if fix.rationale else "")
                      + "relocated: still required by " + ", ".join(dependents),
            destination=owner,
        )
        # Re-validation on a scratch model; a breach propagates.
        apply_fix(self._topology, relocation)
        return _Outcome(
            Verdict.REDESIGNED, relocation,
            "REMOVE would strand " + repr(list(dependents))
            + "; relocated to '" + owner + "'",
            candidates,
        )


def deliberate_fixes(
    topology: TopologyModel,
    fixes: Iterable[Fix],
) -> Tuple[DeliberationVerdict, ...]:
    """Convenience wrapper: DeliberationEngine(topology).deliberate(fixes)."""
    return DeliberationEngine(topology).deliberate(fixes)


__all__ = [
    "DeliberationEngine",
    "deliberate_fixes",
]
