import pytest

from pipegap.core.topology import Check, Component, Field, TopologyModel


def build_model(fields, components, transitions, name="test"):
    """Populate and seal a TopologyModel from plain lists."""
    model = TopologyModel(name=name)
    for f in fields:
        model.add_field(f)
    for c in components:
        model.add_component(c)
    for source, target in transitions:
        model.add_transition(source, target)
    return model.validate()


@pytest.fixture
def chain_fields():
    """query is cardinal; docs and response are not."""
    return [
        Field("query", "User query", cardinal=True),
        Field("docs", "Retrieved documents"),
        Field("response", "Draft response"),
    ]


@pytest.fixture
def grounding_chain(chain_fields) -> TopologyModel:
    """
    retriever -> responder -> validator.

    The responder neither writes nor forwards docs, so the validator is
    missing them: one CRITICAL gap on responder->validator.
    """
    return build_model(
        chain_fields,
        [
            Component("retriever", role="retriever", writes={"query", "docs"}),
            Component("responder", role="generator", reads={"query"}, writes={"response"}),
            Component("validator", role="validator", reads={"response", "docs", "query"}),
        ],
        [("retriever", "responder"), ("responder", "validator")],
        name="grounding_chain",
    )


@pytest.fixture
def search_topology_unused() -> TopologyModel:
    """planner holds web_search; nobody needs it."""
    return build_model(
        [Field("query", cardinal=True), Field("answer")],
        [
            Component("planner", role="planner", writes={"query"}, capabilities={"web_search"}),
            Component("writer", role="generator", reads={"query"}, writes={"answer"}),
        ],
        [("planner", "writer")],
        name="search_unused",
    )


@pytest.fixture
def search_topology_needed() -> TopologyModel:
    """planner holds web_search; writer's lookup check needs it."""
    return build_model(
        [Field("query", cardinal=True), Field("answer")],
        [
            Component("planner", role="planner", writes={"query"}, capabilities={"web_search"}),
            Component(
                "writer", role="generator", reads={"query"}, writes={"answer"},
                checks=(Check("lookup", {"web_search"}),),
            ),
        ],
        [("planner", "writer")],
        name="search_needed",
    )


@pytest.fixture
def grounding_chain_document() -> dict:
    """Document form of grounding_chain, as an extractor would emit it."""
    return {
        "name": "grounding_chain",
        "fields": [
            {"id": "query", "name": "User query", "cardinal": True},
            {"id": "docs", "name": "Retrieved documents", "cardinal": False},
            {"id": "response", "cardinal": False},
        ],
        "components": [
            {"id": "retriever", "role": "retriever", "reads": [], "writes": ["query", "docs"],
             "passthrough": [], "capabilities": []},
            {"id": "responder", "role": "generator", "reads": ["query"], "writes": ["response"],
             "passthrough": [], "capabilities": []},
            {"id": "validator", "role": "validator", "reads": ["response", "docs", "query"], "writes": [],
             "passthrough": [], "capabilities": []},
        ],
        "transitions": [["retriever", "responder"], {"from": "responder", "to": "validator"}],
    }


@pytest.fixture
def make_model():
    return build_model
