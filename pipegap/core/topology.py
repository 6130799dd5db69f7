# =============================================================================
# PIPEGAP v1.0.0 -- CONTRACT-GAP ANALYSIS CORE
# File:   pipegap/core/topology.py
# =============================================================================
#
# SCOPE
# -----
# The Topology Model: fields, capabilities, components with their declared
# read/write/passthrough/capability contracts, and the directed transitions
# between components. Cycles are a legitimate shape (iterative refinement
# loops) and every graph query is visited-set guarded.
#
# INVARIANTS ENFORCED BY validate()
# ---------------------------------
#   every transition endpoint is a known component
#   passthrough and writes are disjoint at every component
#   every field referenced by a component is declared (with a cardinal flag)
#
# LIFECYCLE
# ---------
# A model is populated with add_field / add_component / add_transition and
# then sealed by validate(). A sealed model never changes: the analysis
# passes read it, and fixes produce a new model through derive().
#
# DETERMINISM
# -----------
# All collection-valued queries return frozensets or tuples sorted by id.
# No query depends on insertion order.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from pipegap.core.exceptions import SchemaViolation
from pipegap.utils.constants import (
    UNCLEAR_ROLE,
    VALIDATION_CAPABILITIES,
    VALIDATION_ROLES,
)


# =============================================================================
# SECTION 1 -- SUBJECTS
# =============================================================================

class SubjectKind(str, Enum):
    """Namespace of a subject. Fields and capabilities never collide."""
    FIELD      = "FIELD"
    CAPABILITY = "CAPABILITY"


@dataclass(frozen=True, order=True)
class Subject:
    """A field or capability reference, as found in gaps and fixes."""
    kind: SubjectKind
    id:   str

    @classmethod
    def field(cls, field_id: str) -> "Subject":
        return cls(SubjectKind.FIELD, field_id)

    @classmethod
    def capability(cls, capability_id: str) -> "Subject":
        return cls(SubjectKind.CAPABILITY, capability_id)

    @property
    def is_field(self) -> bool:
        return self.kind is SubjectKind.FIELD

    def __str__(self) -> str:
        return self.kind.value.lower() + ":" + self.id


# =============================================================================
# SECTION 2 -- CONTRACT ELEMENTS
# =============================================================================

@dataclass(frozen=True)
class Field:
    """
    A unit of data flowing between components.

    cardinal=True means the field must persist through every transition it
    crosses; the contract matcher propagates it transitively. Non-cardinal
    fields are visible one hop downstream of their producer only.
    """
    id:       str
    name:     str = ""
    cardinal: bool = False


@dataclass(frozen=True)
class Capability:
    """An action a component may perform (tool or permission)."""
    id:   str
    name: str = ""


@dataclass(frozen=True)
class Check:
    """A declared check of a component and the capabilities it invokes."""
    id:    str
    needs: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "needs", frozenset(self.needs))


def _as_frozenset(value: Iterable[str]) -> FrozenSet[str]:
    if isinstance(value, str):
        # A bare string would otherwise be split into characters.
        return frozenset({value})
    return frozenset(value)


@dataclass(frozen=True)
class Component:
    """
    A pipeline stage and its declared contract.

    Fields
    ------
    id           : Unique component identifier.
    role         : Role tag (gatekeeper, retriever, generator, validator, ...).
    reads        : Field ids the component consumes.
    writes       : Field ids the component freshly produces.
    passthrough  : Field ids received unchanged and forwarded.
    capabilities : Capability ids the component holds.
    checks       : Declared checks; their needs are part of required().
    unclear      : Extraction could not determine the contract. An unclear
                   component requires nothing and contributes nothing.
    confidence   : Extraction confidence in [0.0, 1.0], informational.
    """
    id:           str
    role:         str = ""
    reads:        FrozenSet[str] = frozenset()
    writes:       FrozenSet[str] = frozenset()
    passthrough:  FrozenSet[str] = frozenset()
    capabilities: FrozenSet[str] = frozenset()
    checks:       Tuple[Check, ...] = ()
    unclear:      bool = False
    confidence:   float = 1.0

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise SchemaViolation(
                location="component.id",
                detail="component id must be a non-empty string",
                value=self.id,
            )
        if not isinstance(self.role, str):
            raise SchemaViolation(
                location="components." + self.id + ".role",
                detail="role must be a string",
                value=self.role,
            )
        for name in ("reads", "writes", "passthrough", "capabilities"):
            object.__setattr__(self, name, _as_frozenset(getattr(self, name)))
        object.__setattr__(
            self, "checks", tuple(sorted(self.checks, key=lambda c: c.id))
        )
        if self.role.lower() == UNCLEAR_ROLE:
            object.__setattr__(self, "unclear", True)

    @property
    def needed_capabilities(self) -> FrozenSet[str]:
        needed: set = set()
        for check in self.checks:
            needed |= check.needs
        return frozenset(needed)

    @property
    def required_fields(self) -> FrozenSet[str]:
        if self.unclear:
            return frozenset()
        return self.reads

    @property
    def required_capabilities(self) -> FrozenSet[str]:
        if self.unclear:
            return frozenset()
        return self.needed_capabilities

    @property
    def required(self) -> FrozenSet[Subject]:
        """reads | capabilities needed by declared checks. Empty if unclear."""
        return frozenset(
            [Subject.field(f) for f in self.required_fields]
            + [Subject.capability(c) for c in self.required_capabilities]
        )

    @property
    def emitted_fields(self) -> FrozenSet[str]:
        """Fields handed to every successor: writes | passthrough."""
        if self.unclear:
            return frozenset()
        return self.writes | self.passthrough

    @property
    def held_capabilities(self) -> FrozenSet[str]:
        if self.unclear:
            return frozenset()
        return self.capabilities

    def with_changes(self, **changes) -> "Component":
        return replace(self, **changes)


def is_validation_node(
    component: Component,
    validation_roles: FrozenSet[str] = VALIDATION_ROLES,
    validation_capabilities: FrozenSet[str] = VALIDATION_CAPABILITIES,
) -> bool:
    """True if the component validates or grounds what it receives."""
    if component.role.lower() in validation_roles:
        return True
    touched = component.capabilities | component.needed_capabilities
    return bool(touched & validation_capabilities)


@dataclass(frozen=True, order=True)
class Transition:
    """Directed edge source -> target."""
    source: str
    target: str

    def __str__(self) -> str:
        return self.source + "->" + self.target


# =============================================================================
# SECTION 3 -- TOPOLOGY MODEL
# =============================================================================

class TopologyModel:
    """
    Graph of components and transitions plus declared field cardinality.

    The model is built incrementally and sealed by validate(). Queries are
    available on both sealed and unsealed models; the analysis core only
    accepts sealed ones.
    """

    def __init__(self, name: str = "topology") -> None:
        self.name: str = name
        self._fields: Dict[str, Field] = {}
        self._capabilities: Dict[str, Capability] = {}
        self._components: Dict[str, Component] = {}
        self._transitions: set = set()
        self._sealed: bool = False

    # -----------------------------------------------------------------------
    # SECTION 3.1 -- construction
    # -----------------------------------------------------------------------

    def _require_unsealed(self, operation: str) -> None:
        if self._sealed:
            raise SchemaViolation(
                location=self.name,
                detail=operation + " on a sealed topology; derive a new model instead",
            )

    def add_field(self, field_: Field) -> None:
        self._require_unsealed("add_field")
        if field_.id in self._fields:
            raise SchemaViolation(
                location="fields." + field_.id,
                detail="duplicate field id",
                value=field_.id,
            )
        self._fields[field_.id] = field_

    def add_capability(self, capability: Capability) -> None:
        """Declare a capability. Optional: referencing one also declares it."""
        self._require_unsealed("add_capability")
        if capability.id in self._capabilities:
            raise SchemaViolation(
                location="capabilities." + capability.id,
                detail="duplicate capability id",
                value=capability.id,
            )
        self._capabilities[capability.id] = capability

    def add_component(self, component: Component) -> None:
        self._require_unsealed("add_component")
        if component.id in self._components:
            raise SchemaViolation(
                location="components." + component.id,
                detail="duplicate component id",
                value=component.id,
            )
        self._components[component.id] = component

    def add_transition(
        self,
        source: Union[str, Transition],
        target: Optional[str] = None,
    ) -> Transition:
        """Add an edge. Repeated edges collapse; they carry no extra data."""
        self._require_unsealed("add_transition")
        if isinstance(source, Transition):
            transition = source
        else:
            if target is None:
                raise SchemaViolation(
                    location="transition." + str(source),
                    detail="transition target is missing",
                )
            transition = Transition(source, target)
        self._transitions.add(transition)
        return transition

    def validate(self) -> "TopologyModel":
        """
        Check every invariant and seal the model. Returns self.

        Raises SchemaViolation on the first breach found, scanning
        transitions and components in sorted order.
        """
        for transition in sorted(self._transitions):
            for endpoint in (transition.source, transition.target):
                if endpoint not in self._components:
                    raise SchemaViolation(
                        location="transition." + str(transition),
                        detail="references unknown component '" + endpoint + "'",
                        value=endpoint,
                    )

        for component_id in sorted(self._components):
            component = self._components[component_id]
            overlap = component.passthrough & component.writes
            if overlap:
                raise SchemaViolation(
                    location="components." + component_id,
                    detail="passthrough and writes overlap on "
                           + repr(sorted(overlap)),
                    value=tuple(sorted(overlap)),
                )
            referenced = component.reads | component.writes | component.passthrough
            undeclared = referenced - set(self._fields)
            if undeclared:
                raise SchemaViolation(
                    location="components." + component_id,
                    detail="references undeclared field(s) "
                           + repr(sorted(undeclared)),
                    value=tuple(sorted(undeclared)),
                )

        self._sealed = True
        return self

    def derive(
        self,
        components: Optional[Mapping[str, Component]] = None,
        name: Optional[str] = None,
    ) -> "TopologyModel":
        """
        Return a new, validated model with the given components replaced.

        The current model is left untouched.
        """
        replaced = dict(components or {})
        unknown = set(replaced) - set(self._components)
        if unknown:
            raise SchemaViolation(
                location=self.name,
                detail="cannot replace unknown component(s) " + repr(sorted(unknown)),
                value=tuple(sorted(unknown)),
            )
        model = TopologyModel(name=name or self.name)
        for field_id in sorted(self._fields):
            model.add_field(self._fields[field_id])
        for capability_id in sorted(self._capabilities):
            model.add_capability(self._capabilities[capability_id])
        for component_id in sorted(self._components):
            model.add_component(replaced.get(component_id, self._components[component_id]))
        for transition in sorted(self._transitions):
            model.add_transition(transition)
        return model.validate()

    # -----------------------------------------------------------------------
    # SECTION 3.2 -- accessors
    # -----------------------------------------------------------------------

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def fields(self) -> Mapping[str, Field]:
        return MappingProxyType(self._fields)

    @property
    def components(self) -> Mapping[str, Component]:
        return MappingProxyType(self._components)

    @property
    def component_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self._components))

    @property
    def transitions(self) -> Tuple[Transition, ...]:
        return tuple(sorted(self._transitions))

    def component(self, component_id: str) -> Component:
        try:
            return self._components[component_id]
        except KeyError:
            raise SchemaViolation(
                location="components." + component_id,
                detail="unknown component",
                value=component_id,
            ) from None

    def has_transition(self, transition: Transition) -> bool:
        return transition in self._transitions

    def is_cardinal(self, field_id: str) -> bool:
        field_ = self._fields.get(field_id)
        return field_ is not None and field_.cardinal

    @property
    def cardinal_fields(self) -> FrozenSet[str]:
        return frozenset(f.id for f in self._fields.values() if f.cardinal)

    @property
    def capability_ids(self) -> FrozenSet[str]:
        """Declared capabilities plus every capability a component references."""
        referenced: set = set(self._capabilities)
        for component in self._components.values():
            referenced |= component.capabilities | component.needed_capabilities
        return frozenset(referenced)

    def has_subject(self, subject: Subject) -> bool:
        """Fields must be declared; capabilities exist once referenced."""
        if subject.is_field:
            return subject.id in self._fields
        return subject.id in self.capability_ids

    # -----------------------------------------------------------------------
    # SECTION 3.3 -- graph queries
    # -----------------------------------------------------------------------

    def predecessors(self, component_id: str) -> FrozenSet[str]:
        return frozenset(t.source for t in self._transitions if t.target == component_id)

    def successors(self, component_id: str) -> FrozenSet[str]:
        return frozenset(t.target for t in self._transitions if t.source == component_id)

    def _walk(self, start: str, step) -> FrozenSet[str]:
        visited: set = set()
        frontier: List[str] = sorted(step(start))
        while frontier:
            node = frontier.pop()
            if node in visited:
                continue
            visited.add(node)
            frontier.extend(sorted(step(node) - visited))
        return frozenset(visited)

    def ancestors(self, component_id: str) -> FrozenSet[str]:
        """
        Components with a path of length >= 1 to component_id.

        Includes component_id itself exactly when it lies on a cycle.
        """
        self.component(component_id)
        return self._walk(component_id, self.predecessors)

    def descendants(self, component_id: str) -> FrozenSet[str]:
        """Components reachable from component_id by a path of length >= 1."""
        self.component(component_id)
        return self._walk(component_id, self.successors)

    def strongly_connected_components(self) -> Tuple[FrozenSet[str], ...]:
        """All SCCs, each a frozenset, ordered by smallest member id."""
        assigned: set = set()
        result: List[FrozenSet[str]] = []
        for component_id in self.component_ids:
            if component_id in assigned:
                continue
            scc = frozenset(
                {component_id}
                | (self.descendants(component_id) & self.ancestors(component_id))
            )
            assigned |= scc
            result.append(scc)
        return tuple(sorted(result, key=lambda s: min(s)))

    def cycles(self) -> Tuple[FrozenSet[str], ...]:
        """Non-trivial SCCs: two or more members, or a single self-looping one."""
        return tuple(
            scc for scc in self.strongly_connected_components()
            if len(scc) > 1
            or Transition(next(iter(scc)), next(iter(scc))) in self._transitions
        )

    # -----------------------------------------------------------------------
    # SECTION 3.4 -- serialisation
    # -----------------------------------------------------------------------

    def to_document(self) -> dict:
        """Topology document form, keys and members sorted."""
        return {
            "name": self.name,
            "fields": [
                {"id": f.id, "name": f.name or f.id, "cardinal": f.cardinal}
                for f in (self._fields[k] for k in sorted(self._fields))
            ],
            "capabilities": [
                {"id": c.id, "name": c.name or c.id}
                for c in (self._capabilities[k] for k in sorted(self._capabilities))
            ],
            "components": [
                {
                    "id":           c.id,
                    "role":         c.role,
                    "reads":        sorted(c.reads),
                    "writes":       sorted(c.writes),
                    "passthrough":  sorted(c.passthrough),
                    "capabilities": sorted(c.capabilities),
                    "checks":       [
                        {"id": ch.id, "needs": sorted(ch.needs)} for ch in c.checks
                    ],
                    "unclear":      c.unclear,
                    "confidence":   c.confidence,
                }
                for c in (self._components[k] for k in self.component_ids)
            ],
            "transitions": [[t.source, t.target] for t in self.transitions],
        }

    def __repr__(self) -> str:
        return (
            "TopologyModel(name=" + repr(self.name)
            + ", components=" + str(len(self._components))
            + ", transitions=" + str(len(self._transitions))
            + ", sealed=" + repr(self._sealed)
            + ")"
        )


__all__ = [
    "SubjectKind",
    "Subject",
    "Field",
    "Capability",
    "Check",
    "Component",
    "Transition",
    "TopologyModel",
    "is_validation_node",
]
