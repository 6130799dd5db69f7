# pipegap/utils/constants.py
# Version: 1.0.0
# Single authoritative source for analysis configuration.
# Every public operation takes these as explicit parameter defaults; nothing
# reads the environment or a config file at runtime.
#
# Standard import pattern:
#   from pipegap.utils.constants import (
#       VALIDATION_ROLES,
#       VALIDATION_CAPABILITIES,
#       DEFAULT_CONFIDENCE_THRESHOLD,
#       DEFAULT_MAX_REMEDIATION_ITERATIONS,
#   )


# ---------------------------------------------------------------------------
# VERSIONING
# ---------------------------------------------------------------------------

PIPEGAP_VERSION:        str = "1.0.0"
STORAGE_FORMAT_VERSION: str = "1.0.0"


# ---------------------------------------------------------------------------
# ROLE AND CAPABILITY VOCABULARY
# ---------------------------------------------------------------------------
# Role tags are open-ended strings. The sets below only decide which
# components count as validation nodes for severity ranking.

UNCLEAR_ROLE: str = "unclear"

VALIDATION_ROLES: frozenset = frozenset({
    "validator",
    "grounder",
    "verifier",
    "critic",
    "auditor",
})

VALIDATION_CAPABILITIES: frozenset = frozenset({
    "validate",
    "verify",
    "fact_check",
    "ground",
    "cite_check",
})


# ---------------------------------------------------------------------------
# EXTRACTION CONFIDENCE
# ---------------------------------------------------------------------------
# Components whose extraction confidence falls below this threshold are
# marked UNCLEAR during ingestion.

DEFAULT_CONFIDENCE_THRESHOLD: float = 0.5


# ---------------------------------------------------------------------------
# ITERATION BUDGETS
# ---------------------------------------------------------------------------

# Remediation loop (DELIBERATE -> APPLY -> VERIFY) budget when the caller
# does not supply one.
DEFAULT_MAX_REMEDIATION_ITERATIONS: int = 5

# The availability fixed point is capped at |components| + this offset.
FIXED_POINT_CAP_OFFSET: int = 1


# ---------------------------------------------------------------------------
# CLASSIFICATION
# ---------------------------------------------------------------------------

UNCLASSIFIED: str = "UNCLASSIFIED"


# ---------------------------------------------------------------------------
# CLI EXIT CODES
# ---------------------------------------------------------------------------
#   0 -- verification COMPLETE
#   1 -- unresolved gaps (NEEDS_ITERATION)
#   2 -- invalid input path
#   3 -- SchemaViolation / CycleDivergence / budget exhausted

EXIT_COMPLETE:         int = 0
EXIT_UNRESOLVED_GAPS:  int = 1
EXIT_INVALID_PATH:     int = 2
EXIT_ANALYSIS_ABORTED: int = 3
