# =============================================================================
# PIPEGAP v1.0.0 -- GOVERNANCE TESTS
# File:   tests/unit/governance/test_document_validator.py
# =============================================================================

import copy

import pytest

from pipegap.core.exceptions import SchemaViolation
from pipegap.governance import (
    DocumentValidationResult,
    TopologyDocumentRejected,
    validate_topology_document,
)


# =============================================================================
# SECTION 1 -- Helpers
# =============================================================================

def _rules(result, blocking=True):
    pool = result.blocking_violations if blocking else result.warnings
    return sorted({v.rule_id for v in pool})


def _component(component_id, **overrides):
    entry = {"id": component_id, "role": "generator", "reads": [], "writes": [],
             "passthrough": [], "capabilities": []}
    entry.update(overrides)
    return entry


def _mutated(document, mutate):
    doc = copy.deepcopy(document)
    mutate(doc)
    return validate_topology_document(doc)


# =============================================================================
# SECTION 2 -- Happy path
# =============================================================================

class TestCompliantDocument:

    def test_valid_document(self, grounding_chain_document):
        result = validate_topology_document(grounding_chain_document)
        assert isinstance(result, DocumentValidationResult)
        assert result.is_valid is True
        assert result.violations == ()

    def test_checked_locations_cover_every_entry(self, grounding_chain_document):
        result = validate_topology_document(grounding_chain_document)
        assert "components[2]" in result.checked_locations
        assert "transitions[1]" in result.checked_locations

    def test_empty_contract_lists_accepted(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["components"].append(_component("audit")))
        assert result.is_valid


# =============================================================================
# SECTION 3 -- Blocking rules
# =============================================================================

class TestBlockingRules:

    def test_non_mapping_document(self):
        result = validate_topology_document(["not", "a", "mapping"])
        assert _rules(result) == ["TOP-01"]

    def test_missing_top_level_key(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d.pop("transitions"))
        assert _rules(result) == ["TOP-01"]

    def test_component_without_id(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["components"][0].pop("id"))
        assert "TOP-02" in _rules(result)

    def test_duplicate_component(self, grounding_chain_document):
        result = _mutated(
            grounding_chain_document,
            lambda d: d["components"].append(_component("validator")),
        )
        assert _rules(result) == ["TOP-03"]

    def test_dangling_transition(self, grounding_chain_document):
        result = _mutated(
            grounding_chain_document,
            lambda d: d["transitions"].append(["validator", "ghost"]),
        )
        assert _rules(result) == ["TOP-04"]
        assert result.blocking_violations[0].observed_value == "ghost"

    def test_malformed_transition(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["transitions"].append({"from": "a"}))
        assert _rules(result) == ["TOP-04"]

    def test_bad_field_entry(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["fields"].append({"cardinal": True}))
        assert _rules(result) == ["TOP-05"]

    def test_bare_string_field_rejected(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["fields"].append("context"))
        assert _rules(result) == ["TOP-05"]

    def test_field_without_cardinal_flag_rejected(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["fields"][1].pop("cardinal"))
        assert _rules(result) == ["TOP-05"]
        assert result.blocking_violations[0].location == "fields[1].cardinal"

    def test_non_boolean_cardinal_rejected(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["fields"][0].update(cardinal="yes"))
        assert _rules(result) == ["TOP-05"]

    @pytest.mark.parametrize("key", ["role", "reads", "writes", "passthrough", "capabilities"])
    def test_component_missing_required_key(self, grounding_chain_document, key):
        result = _mutated(grounding_chain_document, lambda d: d["components"][1].pop(key))
        assert _rules(result) == ["TOP-02"]
        assert result.blocking_violations[0].location == "components[responder]." + key

    def test_id_only_component_reports_every_missing_key(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["components"].append({"id": "bare"}))
        assert sorted(v.location for v in result.blocking_violations) == [
            "components[bare].capabilities",
            "components[bare].passthrough",
            "components[bare].reads",
            "components[bare].role",
            "components[bare].writes",
        ]

    def test_undeclared_field(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["components"][1]["reads"].append("nope"))
        assert _rules(result) == ["TOP-06"]

    def test_passthrough_overlapping_writes(self, grounding_chain_document):
        result = _mutated(
            grounding_chain_document,
            lambda d: d["components"][0].update(passthrough=["docs"]),
        )
        assert _rules(result) == ["TOP-07"]

    @pytest.mark.parametrize("confidence", [1.5, -0.1, "high", True])
    def test_bad_confidence(self, grounding_chain_document, confidence):
        result = _mutated(
            grounding_chain_document,
            lambda d: d["components"][0].update(confidence=confidence),
        )
        assert _rules(result) == ["TOP-08"]

    def test_every_problem_is_collected(self, grounding_chain_document):
        def mutate(d):
            d["components"][1]["reads"].append("nope")
            d["transitions"].append(["validator", "ghost"])
        result = _mutated(grounding_chain_document, mutate)
        assert _rules(result) == ["TOP-04", "TOP-06"]


# =============================================================================
# SECTION 4 -- Advisory rules
# =============================================================================

class TestAdvisoryRules:

    def test_unknown_keys_are_advisory(self, grounding_chain_document):
        def mutate(d):
            d["extractor"] = "v2"
            d["components"][0]["owner"] = "team-a"
        result = _mutated(grounding_chain_document, mutate)
        assert result.is_valid
        assert _rules(result, blocking=False) == ["TOP-01", "TOP-02"]

    def test_low_confidence_is_advisory(self, grounding_chain_document):
        result = _mutated(
            grounding_chain_document,
            lambda d: d["components"][1].update(confidence=0.2),
        )
        assert result.is_valid
        assert _rules(result, blocking=False) == ["TOP-08"]

    def test_low_confidence_on_declared_unclear_is_silent(self, grounding_chain_document):
        result = _mutated(
            grounding_chain_document,
            lambda d: d["components"][1].update(confidence=0.2, role="unclear"),
        )
        assert result.warnings == ()

    def test_isolated_component_is_advisory(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d["components"].append(_component("orphan")))
        assert result.is_valid
        assert result.warnings[0].rule_id == "TOP-09"
        assert result.warnings[0].observed_value == "orphan"

    def test_single_component_is_not_isolated(self):
        doc = {"fields": [], "components": [_component("solo")], "transitions": []}
        assert validate_topology_document(doc).violations == ()


# =============================================================================
# SECTION 5 -- Exception
# =============================================================================

class TestTopologyDocumentRejected:

    def test_is_a_schema_violation(self, grounding_chain_document):
        result = _mutated(grounding_chain_document, lambda d: d.pop("fields"))
        exc = TopologyDocumentRejected(result, source="pipeline.yaml")
        assert isinstance(exc, SchemaViolation)
        assert exc.location == "pipeline.yaml"
        assert exc.blocking_violations == result.blocking_violations
        assert "[TOP-01]" in exc.detail
