import pytest

from pipegap.core.exceptions import SchemaViolation
from pipegap.core.topology import (
    Check,
    Component,
    Field,
    Subject,
    SubjectKind,
    TopologyModel,
    Transition,
    is_validation_node,
)


class TestSubject:

    def test_constructors(self):
        assert Subject.field("docs") == Subject(SubjectKind.FIELD, "docs")
        assert Subject.capability("web") == Subject(SubjectKind.CAPABILITY, "web")

    def test_field_and_capability_namespaces_do_not_collide(self):
        assert Subject.field("x") != Subject.capability("x")

    def test_str(self):
        assert str(Subject.field("docs")) == "field:docs"
        assert str(Subject.capability("web")) == "capability:web"


class TestComponent:

    def test_sets_are_frozen(self):
        c = Component("a", reads=["x", "y"])
        assert c.reads == frozenset({"x", "y"})

    def test_bare_string_is_a_single_member(self):
        c = Component("a", writes="docs")
        assert c.writes == frozenset({"docs"})

    def test_empty_id_rejected(self):
        with pytest.raises(SchemaViolation):
            Component("")

    def test_unclear_role_marks_unclear(self):
        assert Component("a", role="unclear").unclear is True

    def test_required_includes_check_needs(self):
        c = Component("a", reads={"x"}, checks=(Check("c1", {"cite"}),))
        assert c.required == frozenset({Subject.field("x"), Subject.capability("cite")})

    def test_unclear_component_requires_and_emits_nothing(self):
        c = Component("a", reads={"x"}, writes={"y"}, capabilities={"k"}, unclear=True)
        assert c.required == frozenset()
        assert c.emitted_fields == frozenset()
        assert c.held_capabilities == frozenset()

    def test_emitted_fields_union(self):
        c = Component("a", writes={"x"}, passthrough={"y"})
        assert c.emitted_fields == frozenset({"x", "y"})


class TestValidationNode:

    def test_role_match(self):
        assert is_validation_node(Component("v", role="Validator"))

    def test_capability_match(self):
        assert is_validation_node(Component("v", role="generator", capabilities={"fact_check"}))

    def test_plain_generator(self):
        assert not is_validation_node(Component("g", role="generator"))


class TestModelConstruction:

    def test_duplicate_component_rejected(self):
        model = TopologyModel()
        model.add_component(Component("a"))
        with pytest.raises(SchemaViolation, match="duplicate"):
            model.add_component(Component("a"))

    def test_duplicate_field_rejected(self):
        model = TopologyModel()
        model.add_field(Field("x"))
        with pytest.raises(SchemaViolation):
            model.add_field(Field("x"))

    def test_unknown_transition_endpoint_rejected(self):
        model = TopologyModel()
        model.add_component(Component("a"))
        model.add_transition("a", "ghost")
        with pytest.raises(SchemaViolation, match="ghost"):
            model.validate()

    def test_passthrough_writes_overlap_rejected(self):
        model = TopologyModel()
        model.add_field(Field("x"))
        model.add_component(Component("a", writes={"x"}, passthrough={"x"}))
        with pytest.raises(SchemaViolation, match="overlap"):
            model.validate()

    def test_undeclared_field_rejected(self):
        model = TopologyModel()
        model.add_component(Component("a", reads={"nope"}))
        with pytest.raises(SchemaViolation, match="undeclared"):
            model.validate()

    def test_sealed_model_rejects_changes(self, grounding_chain):
        with pytest.raises(SchemaViolation, match="sealed"):
            grounding_chain.add_component(Component("late"))

    def test_derive_leaves_original_untouched(self, grounding_chain):
        responder = grounding_chain.component("responder")
        derived = grounding_chain.derive({
            "responder": responder.with_changes(passthrough=frozenset({"docs"})),
        })
        assert derived.sealed
        assert derived.component("responder").passthrough == frozenset({"docs"})
        assert grounding_chain.component("responder").passthrough == frozenset()

    def test_derive_unknown_component_rejected(self, grounding_chain):
        with pytest.raises(SchemaViolation):
            grounding_chain.derive({"ghost": Component("ghost")})


class TestGraphQueries:

    def test_predecessors_successors(self, grounding_chain):
        assert grounding_chain.predecessors("validator") == frozenset({"responder"})
        assert grounding_chain.successors("retriever") == frozenset({"responder"})

    def test_ancestors_of_chain_tail(self, grounding_chain):
        assert grounding_chain.ancestors("validator") == frozenset({"retriever", "responder"})

    def test_node_not_on_cycle_is_not_its_own_ancestor(self, grounding_chain):
        assert "responder" not in grounding_chain.ancestors("responder")

    def test_cycle_member_is_its_own_descendant(self, make_model):
        model = make_model([], [Component("a"), Component("b")], [("a", "b"), ("b", "a")])
        assert model.descendants("a") == frozenset({"a", "b"})
        assert model.cycles() == (frozenset({"a", "b"}),)

    def test_self_loop_is_a_cycle(self, make_model):
        model = make_model([], [Component("a")], [("a", "a")])
        assert model.cycles() == (frozenset({"a"}),)

    def test_strongly_connected_components_cover_every_node(self, grounding_chain):
        sccs = grounding_chain.strongly_connected_components()
        assert sorted(min(s) for s in sccs) == ["responder", "retriever", "validator"]
        assert grounding_chain.cycles() == ()

    def test_transitions_sorted_and_deduplicated(self, make_model):
        model = make_model([], [Component("b"), Component("a")], [("b", "a"), ("a", "b"), ("a", "b")])
        assert model.transitions == (Transition("a", "b"), Transition("b", "a"))

    def test_unknown_component_lookup(self, grounding_chain):
        with pytest.raises(SchemaViolation, match="unknown component"):
            grounding_chain.component("ghost")


class TestToDocument:

    def test_round_trip_shape(self, grounding_chain):
        doc = grounding_chain.to_document()
        assert [c["id"] for c in doc["components"]] == ["responder", "retriever", "validator"]
        assert doc["transitions"] == [["responder", "validator"], ["retriever", "responder"]]
        assert {"id": "query", "name": "User query", "cardinal": True} in doc["fields"]
