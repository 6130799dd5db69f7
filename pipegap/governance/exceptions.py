# pipegap/governance/exceptions.py
# Version: 1.0.0

from __future__ import annotations
from typing import TYPE_CHECKING

from pipegap.core.exceptions import SchemaViolation

if TYPE_CHECKING:
    from pipegap.governance.document_validator import DocumentValidationResult


class TopologyDocumentRejected(SchemaViolation):
    """
    Raised when validate_topology_document() returns blocking violations.

    A SchemaViolation, so callers that only care about "bad input" need not
    know about this subclass.

    Attributes
    ----------
    result : DocumentValidationResult
    blocking_violations : tuple
    """

    def __init__(self, result: "DocumentValidationResult", source: str = "<document>") -> None:
        self.result = result
        self.blocking_violations = result.blocking_violations
        lines = [f"{len(result.blocking_violations)} blocking violation(s) detected."]
        for v in result.blocking_violations:
            lines.append(f"  [{v.rule_id}] {v.location}: {v.message}")
        super().__init__(
            location=source,
            detail="\n".join(lines),
            violations=result.blocking_violations,
        )
