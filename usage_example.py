# usage_example.py
# Minimal usage example for pipegap/orchestrator/pipeline.py.
# This file is not part of the pipegap package. For reference only.

from pipegap.core.records import Action, Fix
from pipegap.orchestrator.pipeline import (
    analyze_topology,
    apply,
    deliberate,
    scan_topology,
    verify_topology,
)

# Inputs
document: dict = {
    "name": "support_bot",
    "fields": [
        {"id": "query", "cardinal": True},
        {"id": "docs", "cardinal": False},
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
    "transitions": [["retriever", "responder"], ["responder", "validator"]],
}

# Compute
topology = scan_topology(document).topology
analysis = analyze_topology(topology)

for gap in analysis.gaps:
    print(gap.describe())

# Expected output:
# [CRITICAL] responder->validator missing field:docs (STRIPPED_GROUNDING)

# Forward docs across the failing hop, then re-check the whole graph.
fixes = [Fix(gap.transition, Action.ADD, subject) for gap in analysis.gaps for subject in gap.missing]
deliberation = deliberate(topology, fixes)
revised = apply(topology, deliberation).topology
report = verify_topology(analysis.gaps, revised)

print(report.summary())

# Expected output:
# iteration 1: COMPLETE (closed=1, remaining=0, introduced=0)

# SchemaViolation examples:
# scan_topology({"fields": [], "components": []})                  # missing 'transitions'
# scan_topology({... "transitions": [["responder", "ghost"]]})     # unknown endpoint
