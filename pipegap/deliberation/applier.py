# pipegap/deliberation/applier.py
# Version: 1.0.0
# In-memory Applier.
#
# Turns accepted fixes into a NEW TopologyModel. The input model is never
# touched; every result goes through TopologyModel.derive(), which
# re-validates all invariants and raises SchemaViolation on a breach.
#
# Slot defaults (Fix.slot is None):
#   capability subject            -> capabilities
#   ADD field on a component      -> writes
#   ADD field on a transition     -> passthrough of the transition's source
#   REMOVE field                  -> writes and passthrough
#   RELOCATE field                -> removed from writes and passthrough of the
#                                    source, added to writes of the destination

from __future__ import annotations

from typing import Iterable, Optional

from pipegap.core.exceptions import SchemaViolation
from pipegap.core.records import Action, DeliberationVerdict, Fix, Slot
from pipegap.core.topology import Component, Subject, TopologyModel, Transition


def _check_slot(fix: Fix, slot: Optional[Slot]) -> None:
    if slot is None:
        return
    if fix.subject.is_field and slot is Slot.CAPABILITIES:
        raise SchemaViolation(
            location=str(fix),
            detail="a field cannot occupy the capabilities slot",
            value=slot.value,
        )
    if not fix.subject.is_field and slot is not Slot.CAPABILITIES:
        raise SchemaViolation(
            location=str(fix),
            detail="a capability can only occupy the capabilities slot",
            value=slot.value,
        )


def _without(component: Component, subject: Subject, slot: Optional[Slot]) -> Component:
    if not subject.is_field:
        return component.with_changes(capabilities=component.capabilities - {subject.id})
    slots = (slot,) if slot is not None else (Slot.WRITES, Slot.PASSTHROUGH)
    changes = {
        s.value: getattr(component, s.value) - {subject.id} for s in slots
    }
    return component.with_changes(**changes)


def _with(component: Component, subject: Subject, slot: Slot) -> Component:
    if not subject.is_field:
        return component.with_changes(capabilities=component.capabilities | {subject.id})
    return component.with_changes(
        **{slot.value: getattr(component, slot.value) | {subject.id}}
    )


def default_add_slot(fix: Fix) -> Slot:
    if not fix.subject.is_field:
        return Slot.CAPABILITIES
    if isinstance(fix.target, Transition):
        return Slot.PASSTHROUGH
    return Slot.WRITES


def apply_fix(topology: TopologyModel, fix: Fix) -> TopologyModel:
    """
    Return a new model with one fix applied.

    Raises SchemaViolation for unknown components/transitions, undeclared
    fields, slot/subject mismatches, or any invariant the result breaks.
    """
    _check_slot(fix, fix.slot)
    if isinstance(fix.target, Transition) and not topology.has_transition(fix.target):
        raise SchemaViolation(
            location=str(fix.target),
            detail="fix targets an unknown transition",
            value=str(fix.target),
        )
    if fix.subject.is_field and fix.subject.id not in topology.fields:
        raise SchemaViolation(
            location=str(fix),
            detail="fix references undeclared field '" + fix.subject.id + "'",
            value=fix.subject.id,
        )
    source = topology.component(fix.component_id)

    if fix.action is Action.REMOVE:
        return topology.derive({source.id: _without(source, fix.subject, fix.slot)})

    if fix.action is Action.ADD:
        slot = fix.slot or default_add_slot(fix)
        return topology.derive({source.id: _with(source, fix.subject, slot)})

    if fix.action is Action.RELOCATE:
        if not fix.destination:
            raise SchemaViolation(
                location=str(fix),
                detail="RELOCATE requires a destination component",
            )
        destination = topology.component(fix.destination)
        slot = fix.slot or (Slot.WRITES if fix.subject.is_field else Slot.CAPABILITIES)
        if destination.id == source.id:
            # Intra-component move between slots.
            moved = _with(_without(source, fix.subject, None), fix.subject, slot)
            return topology.derive({source.id: moved})
        return topology.derive({
            source.id:      _without(source, fix.subject, None),
            destination.id: _with(destination, fix.subject, slot),
        })

    raise SchemaViolation(
        location=str(fix),
        detail="unsupported fix action",
        value=fix.action,
    )


def apply_fixes(topology: TopologyModel, fixes: Iterable[Fix]) -> TopologyModel:
    """Apply fixes in order; each one sees the result of the previous."""
    result = topology
    for fix in fixes:
        result = apply_fix(result, fix)
    return result


def apply_deliberated_fixes(
    topology: TopologyModel,
    verdicts: Iterable[DeliberationVerdict],
) -> TopologyModel:
    """Apply PROCEED and REDESIGNED fixes; FLAGGED ones are left for the driver."""
    return apply_fixes(topology, [v.fix for v in verdicts if v.accepted])


__all__ = [
    "default_add_slot",
    "apply_fix",
    "apply_fixes",
    "apply_deliberated_fixes",
]
