# pipegap/governance/document_validator.py
# Version: 1.0.0
# Structural checks on a raw topology document (the parsed YAML/JSON
# mapping) before any model object is built.
#
# Every problem is collected, not just the first. Blocking violations stop
# ingestion; advisory ones are reported and the document is accepted.

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Set

from pipegap.utils.constants import DEFAULT_CONFIDENCE_THRESHOLD, UNCLEAR_ROLE

_TOP_LEVEL_KEYS: tuple = ("fields", "components", "transitions")
_OPTIONAL_TOP_LEVEL_KEYS: frozenset = frozenset({"name", "capabilities"})
_COMPONENT_SET_KEYS: tuple = ("reads", "writes", "passthrough", "capabilities")
_REQUIRED_COMPONENT_KEYS: tuple = ("role",) + _COMPONENT_SET_KEYS
_COMPONENT_KEYS: frozenset = frozenset(
    {"id", "checks", "confidence", "unclear"} | set(_REQUIRED_COMPONENT_KEYS)
)


@dataclass(frozen=True)
class DocumentViolation:
    rule_id:        str
    location:       str
    observed_value: object
    message:        str
    is_blocking:    bool


@dataclass(frozen=True)
class DocumentValidationResult:
    is_valid:            bool
    violations:          tuple
    warnings:            tuple
    blocking_violations: tuple
    checked_locations:   tuple


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) and v for v in value)


def _transition_pair(entry: Any):
    if isinstance(entry, list) and len(entry) == 2:
        return entry[0], entry[1]
    if isinstance(entry, dict) and set(entry) == {"from", "to"}:
        return entry["from"], entry["to"]
    return None


def validate_topology_document(
    document: Any,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> DocumentValidationResult:
    violations: List[DocumentViolation] = []
    checked: List[str] = []

    def add(rule_id: str, location: str, value: object, message: str, blocking: bool = True) -> None:
        violations.append(DocumentViolation(rule_id, location, value, message, blocking))

    checked.append("<document>")
    if not isinstance(document, dict):
        add("TOP-01", "<document>", type(document).__name__,
            f"topology document must be a mapping; got: {type(document).__name__}.")
        return _result(violations, checked)
    for key in _TOP_LEVEL_KEYS:
        if key not in document:
            add("TOP-01", key, None, f"missing top-level key '{key}'.")
        elif not isinstance(document[key], list):
            add("TOP-01", key, type(document[key]).__name__,
                f"'{key}' must be a list; got: {type(document[key]).__name__}.")
    unknown = sorted(set(document) - set(_TOP_LEVEL_KEYS) - _OPTIONAL_TOP_LEVEL_KEYS)
    for key in unknown:
        add("TOP-01", key, key, f"unknown top-level key '{key}' ignored.", False)
    if "name" in document and not isinstance(document["name"], str):
        add("TOP-01", "name", document["name"], "'name' must be a string.")

    # -- fields ------------------------------------------------------------
    declared: Set[str] = set()
    fields = document.get("fields") if isinstance(document.get("fields"), list) else []
    for i, entry in enumerate(fields):
        loc = f"fields[{i}]"
        checked.append(loc)
        if not isinstance(entry, dict):
            add("TOP-05", loc, entry, "field entry must be a mapping with 'id' and 'cardinal'.")
            continue
        field_id = entry.get("id")
        if not isinstance(field_id, str) or not field_id:
            add("TOP-05", loc + ".id", field_id, "field id must be a non-empty string.")
            continue
        if "cardinal" not in entry:
            add("TOP-05", loc + ".cardinal", None, f"field '{field_id}' is missing required key 'cardinal'.")
        elif not isinstance(entry["cardinal"], bool):
            add("TOP-05", loc + ".cardinal", entry["cardinal"], "'cardinal' must be a boolean.")
        if not isinstance(entry.get("name", ""), str):
            add("TOP-05", loc + ".name", entry.get("name"), "'name' must be a string.")
        if field_id in declared:
            add("TOP-03", loc, field_id, f"duplicate field id '{field_id}'.")
        declared.add(field_id)

    capabilities = document.get("capabilities", [])
    if not isinstance(capabilities, list):
        add("TOP-01", "capabilities", type(capabilities).__name__, "'capabilities' must be a list.")
    else:
        for i, entry in enumerate(capabilities):
            cap_id = entry.get("id") if isinstance(entry, dict) else entry
            if not isinstance(cap_id, str) or not cap_id:
                add("TOP-02", f"capabilities[{i}]", entry,
                    "capability entry must be a string or a mapping with 'id'.")

    # -- components --------------------------------------------------------
    component_ids: Set[str] = set()
    components = document.get("components") if isinstance(document.get("components"), list) else []
    for i, entry in enumerate(components):
        loc = f"components[{i}]"
        checked.append(loc)
        if not isinstance(entry, dict):
            add("TOP-02", loc, entry, "component entry must be a mapping.")
            continue
        component_id = entry.get("id")
        if not isinstance(component_id, str) or not component_id:
            add("TOP-02", loc + ".id", component_id, "component id must be a non-empty string.")
            continue
        loc = f"components[{component_id}]"
        if component_id in component_ids:
            add("TOP-03", loc, component_id, f"duplicate component id '{component_id}'.")
        component_ids.add(component_id)

        for key in sorted(set(entry) - _COMPONENT_KEYS):
            add("TOP-02", f"{loc}.{key}", key, f"unknown component key '{key}' ignored.", False)
        for key in _REQUIRED_COMPONENT_KEYS:
            if key not in entry:
                add("TOP-02", f"{loc}.{key}", None, f"component is missing required key '{key}'.")
        if not isinstance(entry.get("role", ""), str):
            add("TOP-02", loc + ".role", entry.get("role"), "'role' must be a string.")
        for key in _COMPONENT_SET_KEYS:
            if key not in entry:
                continue
            value = entry[key]
            if not _is_str_list(value):
                add("TOP-02", f"{loc}.{key}", value, f"'{key}' must be a list of non-empty strings.")
            elif key != "capabilities":
                for field_id in value:
                    if field_id not in declared:
                        add("TOP-06", f"{loc}.{key}", field_id,
                            f"'{field_id}' is not a declared field.")
        writes, passthrough = entry.get("writes", []), entry.get("passthrough", [])
        if _is_str_list(writes) and _is_str_list(passthrough):
            overlap = sorted(set(writes) & set(passthrough))
            if overlap:
                add("TOP-07", loc + ".passthrough", overlap,
                    f"fields {overlap} are both written and passed through.")

        checks = entry.get("checks", [])
        if not isinstance(checks, list):
            add("TOP-02", loc + ".checks", checks, "'checks' must be a list.")
        else:
            for j, check in enumerate(checks):
                if (not isinstance(check, dict)
                        or not isinstance(check.get("id"), str)
                        or not _is_str_list(check.get("needs", []))):
                    add("TOP-02", f"{loc}.checks[{j}]", check,
                        "check must be a mapping with string 'id' and list 'needs'.")

        if "unclear" in entry and not isinstance(entry["unclear"], bool):
            add("TOP-02", loc + ".unclear", entry["unclear"], "'unclear' must be a boolean.")
        if "confidence" in entry:
            confidence = entry["confidence"]
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                add("TOP-08", loc + ".confidence", confidence,
                    f"confidence must be numeric; got: {type(confidence).__name__}.")
            elif not (0.0 <= float(confidence) <= 1.0):
                add("TOP-08", loc + ".confidence", confidence,
                    f"confidence must be in [0.0, 1.0]; got: {confidence}.")
            elif float(confidence) < confidence_threshold and entry.get("role") != UNCLEAR_ROLE:
                add("TOP-08", loc + ".confidence", confidence,
                    f"confidence {confidence} below {confidence_threshold}; "
                    f"contract will be treated as UNCLEAR.", False)

    # -- transitions -------------------------------------------------------
    connected: Set[str] = set()
    transitions = document.get("transitions") if isinstance(document.get("transitions"), list) else []
    for i, entry in enumerate(transitions):
        loc = f"transitions[{i}]"
        checked.append(loc)
        pair = _transition_pair(entry)
        if pair is None:
            add("TOP-04", loc, entry,
                "transition must be a [source, target] pair or a mapping with 'from' and 'to'.")
            continue
        for end in pair:
            if not isinstance(end, str) or end not in component_ids:
                add("TOP-04", loc, end, f"transition endpoint {end!r} is not a known component.")
        connected.update(e for e in pair if isinstance(e, str))

    if len(component_ids) > 1:
        for component_id in sorted(component_ids - connected):
            add("TOP-09", f"components[{component_id}]", component_id,
                f"component '{component_id}' has no transitions.", False)

    return _result(violations, checked)


def _result(violations: List[DocumentViolation], checked: List[str]) -> DocumentValidationResult:
    blocking = tuple(v for v in violations if v.is_blocking)
    advisory = tuple(v for v in violations if not v.is_blocking)
    return DocumentValidationResult(
        is_valid=len(blocking) == 0,
        violations=tuple(violations),
        warnings=advisory,
        blocking_violations=blocking,
        checked_locations=tuple(checked),
    )
