# pipegap/core/__init__.py
# Core value types for contract-gap analysis.
# Authoritative import source for the topology model: pipegap.core.topology

from pipegap.core.exceptions import (
    GapAnalysisError,
    SchemaViolation,
    CycleDivergence,
    ClassificationAmbiguity,
    DeliberationUncertain,
    IterationBudgetExhausted,
)
from pipegap.core.topology import (
    SubjectKind,
    Subject,
    Field,
    Capability,
    Check,
    Component,
    Transition,
    TopologyModel,
    is_validation_node,
)
from pipegap.core.records import (
    Severity,
    Gap,
    Action,
    Slot,
    Fix,
    Verdict,
    FixState,
    DeliberationVerdict,
)
from pipegap.core.integrity_layer import IntegrityLayer
from pipegap.core.logging_layer import EventLogger, Event, EventFilter, Phase, LoggingError

__all__ = [
    "GapAnalysisError",
    "SchemaViolation",
    "CycleDivergence",
    "ClassificationAmbiguity",
    "DeliberationUncertain",
    "IterationBudgetExhausted",
    "SubjectKind",
    "Subject",
    "Field",
    "Capability",
    "Check",
    "Component",
    "Transition",
    "TopologyModel",
    "is_validation_node",
    "Severity",
    "Gap",
    "Action",
    "Slot",
    "Fix",
    "Verdict",
    "FixState",
    "DeliberationVerdict",
    "IntegrityLayer",
    "EventLogger",
    "Event",
    "EventFilter",
    "Phase",
    "LoggingError",
]
