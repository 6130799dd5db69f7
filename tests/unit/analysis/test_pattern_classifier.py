import pytest

from pipegap.analysis.contract_matcher import compute_availability
from pipegap.analysis.pattern_classifier import (
    run_gap_analysis,
    self_referential_cycles,
)
from pipegap.analysis.patterns import (
    DEFAULT_PATTERN_TABLE,
    PatternRule,
    PatternScope,
    SELF_REFERENTIAL_VALIDATION,
    select_patterns,
    validate_pattern_table,
)
from pipegap.core.records import Severity
from pipegap.core.topology import Check, Component, Field, Subject, Transition
from pipegap.utils.constants import UNCLASSIFIED


def _only_gap(gaps):
    assert len(gaps) == 1
    return gaps[0]


def _self_validating_cycle(make_model):
    return make_model(
        [Field("x"), Field("y")],
        [
            Component("a", role="validator", reads={"x"}, writes={"y"}),
            Component("b", role="generator", reads={"y"}, writes={"x"}),
        ],
        [("a", "b"), ("b", "a")],
    )


class TestTaxonomyTable:

    def test_default_table_has_fourteen_entries(self):
        assert len(DEFAULT_PATTERN_TABLE) == 14

    def test_exactly_one_cycle_rule_last(self):
        assert DEFAULT_PATTERN_TABLE[-1].pattern_id == SELF_REFERENTIAL_VALIDATION
        assert DEFAULT_PATTERN_TABLE[-1].scope is PatternScope.CYCLE

    def test_select_keeps_priority_order(self):
        table = select_patterns("ORPHAN_REQUIREMENT", "OPAQUE_HANDOFF")
        assert [r.pattern_id for r in table] == ["OPAQUE_HANDOFF", "ORPHAN_REQUIREMENT"]

    def test_select_unknown_rejected(self):
        with pytest.raises(ValueError, match="unknown"):
            select_patterns("NOT_A_PATTERN")

    def test_duplicate_ids_rejected(self):
        rule = DEFAULT_PATTERN_TABLE[0]
        with pytest.raises(ValueError, match="duplicate"):
            validate_pattern_table([rule, rule])

    def test_transition_rule_without_predicate_rejected(self):
        with pytest.raises(ValueError, match="predicate"):
            validate_pattern_table([PatternRule("X", "x", "no predicate")])


class TestStrippedGrounding:

    def test_docs_gap_is_critical_stripped_grounding(self, grounding_chain):
        gap = _only_gap(run_gap_analysis(grounding_chain))
        assert gap.transition == Transition("responder", "validator")
        assert gap.missing == frozenset({Subject.field("docs")})
        assert gap.pattern == "STRIPPED_GROUNDING"
        assert gap.severity is Severity.CRITICAL
        assert gap.flagged is False


class TestSeverityRanking:

    def test_cardinal_field_at_non_validator_is_medium(self, make_model):
        model = make_model(
            [Field("q", cardinal=True)],
            [Component("a"), Component("b", role="generator", reads={"q"})],
            [("a", "b")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.pattern == "ORPHAN_REQUIREMENT"
        assert gap.severity is Severity.MEDIUM

    def test_plain_field_is_low(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("a", writes={"x"}), Component("b"), Component("c"), Component("d", reads={"x"})],
            [("a", "b"), ("b", "c"), ("c", "d")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.pattern == "DISTANT_PRODUCER"
        assert gap.severity is Severity.LOW

    def test_missing_capability_is_high(self, make_model):
        model = make_model(
            [],
            [
                Component("a", capabilities={"search"}),
                Component("b", role="generator", checks=(Check("lookup", {"search"}),)),
            ],
            [("a", "b")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.pattern == "MISALLOCATED_CAPABILITY"
        assert gap.severity is Severity.HIGH

    def test_phantom_capability(self, make_model):
        model = make_model(
            [],
            [Component("a"), Component("b", checks=(Check("lookup", {"search"}),))],
            [("a", "b")],
        )
        assert _only_gap(run_gap_analysis(model)).pattern == "PHANTOM_CAPABILITY"

    def test_severity_override_replaces_ranking(self, grounding_chain):
        table = (
            PatternRule(
                "ANY", "Any gap", "catch-all",
                lambda ctx: True,
                severity_override=Severity.LOW,
            ),
        )
        gap = _only_gap(run_gap_analysis(grounding_chain, table))
        assert gap.pattern == "ANY"
        assert gap.severity is Severity.LOW


class TestOtherPatterns:

    def test_cardinal_breach(self, make_model):
        model = make_model(
            [Field("q", cardinal=True)],
            [Component("a", writes={"q"}), Component("x", unclear=True),
             Component("b", role="generator"), Component("c", reads={"q"})],
            [("a", "x"), ("x", "b"), ("b", "c")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.transition == Transition("b", "c")
        assert gap.pattern == "CARDINAL_BREACH"

    def test_temporal_inversion(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("a"), Component("b", reads={"x"}), Component("c", writes={"x"})],
            [("a", "b"), ("b", "c")],
        )
        assert _only_gap(run_gap_analysis(model)).pattern == "TEMPORAL_INVERSION"

    def test_sibling_isolation(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("root"), Component("left", writes={"x"}), Component("right", reads={"x"})],
            [("root", "left"), ("root", "right")],
        )
        assert _only_gap(run_gap_analysis(model)).pattern == "SIBLING_ISOLATION"

    def test_silent_drop(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("a", writes={"x"}), Component("b"), Component("c", reads={"x"})],
            [("a", "b"), ("b", "c")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.transition == Transition("b", "c")
        assert gap.pattern == "SILENT_DROP"

    def test_second_path_closes_the_gap(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("a", writes={"x"}), Component("b"), Component("c", reads={"x"})],
            [("a", "b"), ("b", "c"), ("a", "c")],
        )
        assert run_gap_analysis(model) == ()

    def test_procrustean_fix(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("a"), Component("b", reads={"x"}, writes={"x"})],
            [("a", "b")],
        )
        assert _only_gap(run_gap_analysis(model)).pattern == "PROCRUSTEAN_FIX"

    def test_first_match_wins(self, make_model):
        # Opaque source and an orphan field: OPAQUE_HANDOFF is earlier.
        model = make_model(
            [Field("x")],
            [Component("a", unclear=True), Component("b", reads={"x"})],
            [("a", "b")],
        )
        assert _only_gap(run_gap_analysis(model)).pattern == "OPAQUE_HANDOFF"


class TestUnclassified:

    def test_no_matching_rule_yields_unclassified_medium(self, grounding_chain):
        gap = _only_gap(run_gap_analysis(grounding_chain, select_patterns("PHANTOM_CAPABILITY")))
        assert gap.pattern == UNCLASSIFIED
        assert gap.severity is Severity.MEDIUM


class TestUnclearEscalation:

    def test_gap_behind_unclear_component_raised_and_flagged(self, make_model):
        model = make_model(
            [Field("docs")],
            [
                Component("retriever", writes={"docs"}),
                Component("opaque", role="unclear"),
                Component("writer", role="generator", reads={"docs"}),
            ],
            [("retriever", "opaque"), ("opaque", "writer")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.pattern == "OPAQUE_HANDOFF"
        assert gap.severity is Severity.HIGH
        assert gap.flagged is True


class TestCycleSingleCounting:

    def test_closed_cycle_detected(self, make_model):
        model = _self_validating_cycle(make_model)
        availability, _ = compute_availability(model)
        assert self_referential_cycles(model, availability) == (
            (frozenset({"a", "b"}), frozenset({"x", "y"})),
        )

    def test_exactly_one_cycle_gap(self, make_model):
        gap = _only_gap(run_gap_analysis(_self_validating_cycle(make_model)))
        assert gap.pattern == SELF_REFERENTIAL_VALIDATION
        assert gap.cycle == frozenset({"a", "b"})
        assert gap.transition == Transition("a", "b")
        assert gap.missing == frozenset({Subject.field("x"), Subject.field("y")})
        assert gap.severity is Severity.CRITICAL

    def test_iteration_count_does_not_multiply_cycle_gaps(self, make_model):
        model = _self_validating_cycle(make_model)
        for cap in (3, 10, 50):
            gaps = run_gap_analysis(model, max_iterations=cap)
            assert sum(1 for g in gaps if g.cycle) == 1

    def test_entry_edge_supplying_nothing_read_is_still_self_referential(self, make_model):
        model = make_model(
            [Field("x"), Field("y"), Field("seed")],
            [
                Component("src", writes={"seed"}),
                Component("a", role="validator", reads={"x"}, writes={"y"}),
                Component("b", reads={"y"}, writes={"x"}),
            ],
            [("src", "a"), ("a", "b"), ("b", "a")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.pattern == SELF_REFERENTIAL_VALIDATION
        assert gap.cycle == frozenset({"a", "b"})
        assert gap.missing == frozenset({Subject.field("x"), Subject.field("y")})

    def test_cycle_grounded_from_outside_is_not_self_referential(self, make_model):
        model = make_model(
            [Field("x"), Field("y"), Field("seed", cardinal=True)],
            [
                Component("src", writes={"seed"}),
                Component("a", role="validator", reads={"x", "seed"}, writes={"y"}),
                Component("b", reads={"y", "seed"}, writes={"x"}),
            ],
            [("src", "a"), ("a", "b"), ("b", "a")],
        )
        assert run_gap_analysis(model) == ()

    def test_only_inside_fed_members_contribute(self, make_model):
        model = make_model(
            [Field("x"), Field("y"), Field("seed")],
            [
                Component("src", writes={"seed"}),
                Component("a", reads={"seed", "x"}, writes={"y"}),
                Component("b", role="validator", reads={"y"}, writes={"x"}),
            ],
            [("src", "a"), ("a", "b"), ("b", "a")],
        )
        gap = _only_gap(run_gap_analysis(model))
        assert gap.cycle == frozenset({"a", "b"})
        assert gap.missing == frozenset({Subject.field("y")})

    def test_cycle_reading_nothing_yields_no_gap(self, make_model):
        model = make_model(
            [Field("x")],
            [Component("a", writes={"x"}), Component("b")],
            [("a", "b"), ("b", "a")],
        )
        availability, _ = compute_availability(model)
        assert self_referential_cycles(model, availability) == ()
        assert run_gap_analysis(model) == ()

    def test_cycle_rule_can_be_excluded(self, make_model):
        table = select_patterns("ORPHAN_REQUIREMENT")
        assert run_gap_analysis(_self_validating_cycle(make_model), table) == ()


class TestReportOrder:

    def test_severity_descending(self, make_model):
        model = make_model(
            [Field("q", cardinal=True), Field("x"), Field("ev")],
            [
                Component("a", writes={"x"}),
                Component("b", reads={"q"}),
                Component("c", reads={"x"}),
                Component("v", role="validator", reads={"ev"}),
            ],
            [("a", "b"), ("b", "c"), ("c", "v")],
        )
        severities = [g.severity for g in run_gap_analysis(model)]
        assert severities == sorted(severities, key=lambda s: -s.rank)
        assert severities[0] is Severity.CRITICAL
