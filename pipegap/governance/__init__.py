# pipegap/governance/__init__.py
# Version: 1.0.0

from pipegap.governance.document_validator import (
    validate_topology_document,
    DocumentValidationResult,
    DocumentViolation,
)
from pipegap.governance.exceptions import TopologyDocumentRejected

__all__ = [
    "validate_topology_document",
    "DocumentValidationResult",
    "DocumentViolation",
    "TopologyDocumentRejected",
]
