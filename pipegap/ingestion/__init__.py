# pipegap/ingestion/__init__.py
# Version: 1.0.0

from pipegap.ingestion.document_loader import (
    read_document,
    build_topology,
    load_topology_document,
    build_fixes,
    load_fix_document,
)

__all__ = [
    "read_document",
    "build_topology",
    "load_topology_document",
    "build_fixes",
    "load_fix_document",
]
