# pipegap/ingestion/document_loader.py
# Version: 1.0.0
# Reads topology and fix documents from disk and builds model objects.
#
# Accepted formats (by suffix):
#   .yaml / .yml  -> yaml.safe_load
#   .json         -> json.load
#
# A topology document is checked by governance.validate_topology_document()
# first; blocking violations raise TopologyDocumentRejected (a
# SchemaViolation). Low-confidence components are normalised to UNCLEAR
# here, so the analysis core never sees confidence thresholds.

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml

from pipegap.core.exceptions import SchemaViolation
from pipegap.core.records import Action, Fix, Slot
from pipegap.core.topology import (
    Capability,
    Check,
    Component,
    Field,
    Subject,
    SubjectKind,
    TopologyModel,
    Transition,
)
from pipegap.governance.document_validator import validate_topology_document
from pipegap.governance.exceptions import TopologyDocumentRejected
from pipegap.utils.constants import DEFAULT_CONFIDENCE_THRESHOLD

_YAML_SUFFIXES = frozenset({".yaml", ".yml"})
_JSON_SUFFIXES = frozenset({".json"})


def read_document(path: Union[str, Path]) -> Any:
    """
    Parse a YAML or JSON file.

    Raises FileNotFoundError for a missing path and SchemaViolation for an
    unsupported suffix or a parse error.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"document not found: {path}")
    suffix = path.suffix.lower()
    try:
        with open(path, "r", encoding="utf-8") as f:
            if suffix in _YAML_SUFFIXES:
                return yaml.safe_load(f)
            if suffix in _JSON_SUFFIXES:
                return json.load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise SchemaViolation(
            location=str(path),
            detail=f"document could not be parsed: {exc}",
        ) from exc
    raise SchemaViolation(
        location=str(path),
        detail=f"unsupported document format '{suffix}'; expected .yaml, .yml or .json",
        value=suffix,
    )


# =============================================================================
# TOPOLOGY
# =============================================================================

def _field_from_entry(entry: dict) -> Field:
    return Field(
        id=entry["id"],
        name=entry.get("name", ""),
        cardinal=entry["cardinal"],
    )


def _component_from_entry(entry: dict, confidence_threshold: float) -> Component:
    confidence = float(entry.get("confidence", 1.0))
    unclear = bool(entry.get("unclear", False)) or confidence < confidence_threshold
    return Component(
        id=entry["id"],
        role=entry["role"],
        reads=entry["reads"],
        writes=entry["writes"],
        passthrough=entry["passthrough"],
        capabilities=entry["capabilities"],
        checks=tuple(
            Check(id=c["id"], needs=c.get("needs", []))
            for c in entry.get("checks", [])
        ),
        unclear=unclear,
        confidence=confidence,
    )


def build_topology(
    document: Any,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    source: str = "<document>",
) -> TopologyModel:
    """
    Validate a parsed topology document and return a sealed TopologyModel.

    Raises TopologyDocumentRejected on blocking document violations and
    SchemaViolation on any model invariant breach.
    """
    result = validate_topology_document(document, confidence_threshold)
    if not result.is_valid:
        raise TopologyDocumentRejected(result, source)

    topology = TopologyModel(name=document.get("name") or Path(source).stem or "topology")
    for entry in document["fields"]:
        topology.add_field(_field_from_entry(entry))
    for entry in document.get("capabilities", []):
        if isinstance(entry, str):
            topology.add_capability(Capability(id=entry))
        else:
            topology.add_capability(Capability(id=entry["id"], name=entry.get("name", "")))
    for entry in document["components"]:
        topology.add_component(_component_from_entry(entry, confidence_threshold))
    for entry in document["transitions"]:
        if isinstance(entry, dict):
            topology.add_transition(entry["from"], entry["to"])
        else:
            topology.add_transition(entry[0], entry[1])
    return topology.validate()


def load_topology_document(
    path: Union[str, Path],
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> TopologyModel:
    return build_topology(read_document(path), confidence_threshold, source=str(path))


# =============================================================================
# FIXES
# =============================================================================

def _enum_value(enum_cls, raw: Any, location: str):
    try:
        return enum_cls(raw.lower() if enum_cls is Slot else raw.upper())
    except (AttributeError, ValueError) as exc:
        raise SchemaViolation(
            location=location,
            detail=f"invalid {enum_cls.__name__.lower()} {raw!r}",
            value=raw,
        ) from exc


def _fix_target(raw: Any, location: str):
    if isinstance(raw, str) and raw:
        return raw
    if isinstance(raw, dict) and set(raw) == {"from", "to"}:
        return Transition(raw["from"], raw["to"])
    if isinstance(raw, list) and len(raw) == 2:
        return Transition(raw[0], raw[1])
    raise SchemaViolation(
        location=location + ".target",
        detail="target must be a component id or a {from, to} transition",
        value=raw,
    )


def build_fixes(document: Any, source: str = "<fixes>") -> List[Fix]:
    """
    Parse a list of fix entries:

        - target: responder            # or {from: a, to: b}
          action: ADD                  # REMOVE / ADD / RELOCATE
          subject: docs
          kind: field                  # field (default) / capability
          slot: passthrough            # optional
          destination: validator       # RELOCATE only
          rationale: "..."             # optional
    """
    if isinstance(document, dict) and "fixes" in document:
        document = document["fixes"]
    if not isinstance(document, list):
        raise SchemaViolation(
            location=source,
            detail="fix document must be a list of fix entries",
            value=type(document).__name__,
        )

    fixes: List[Fix] = []
    for i, entry in enumerate(document):
        loc = f"{source}[{i}]"
        if not isinstance(entry, dict):
            raise SchemaViolation(location=loc, detail="fix entry must be a mapping", value=entry)
        for key in ("target", "action", "subject"):
            if key not in entry:
                raise SchemaViolation(location=loc, detail=f"missing key '{key}'")
        subject_id = entry["subject"]
        if not isinstance(subject_id, str) or not subject_id:
            raise SchemaViolation(location=loc + ".subject", detail="subject must be a non-empty string",
                                  value=subject_id)
        kind = _enum_value(SubjectKind, entry.get("kind", "field"), loc + ".kind")
        slot: Optional[Slot] = None
        if entry.get("slot") is not None:
            slot = _enum_value(Slot, entry["slot"], loc + ".slot")
        destination = entry.get("destination")
        if destination is not None and not isinstance(destination, str):
            raise SchemaViolation(location=loc + ".destination", detail="destination must be a string",
                                  value=destination)
        fixes.append(Fix(
            target=_fix_target(entry["target"], loc),
            action=_enum_value(Action, entry["action"], loc + ".action"),
            subject=Subject(kind, subject_id),
            rationale=str(entry.get("rationale", "")),
            slot=slot,
            destination=destination,
        ))
    return fixes


def load_fix_document(path: Union[str, Path]) -> List[Fix]:
    return build_fixes(read_document(path), source=str(path))


__all__ = [
    "read_document",
    "build_topology",
    "load_topology_document",
    "build_fixes",
    "load_fix_document",
]
