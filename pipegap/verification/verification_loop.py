# =============================================================================
# PIPEGAP v1.0.0 -- VERIFICATION LOOP
# File:   pipegap/verification/verification_loop.py
# =============================================================================
#
# SCOPE
# -----
# Re-runs gap analysis on a mutated topology and compares the new Gap
# Report G1 against the prior report G0:
#
#   closed     = G0 - G1     (records from G0)
#   remaining  = G0 & G1     (records from G1, so re-ranked severities show)
#   introduced = G1 - G0     (regressions caused by the applied fixes)
#
# Gaps are compared by Gap.key (transition, missing, cycle). Pattern and
# severity are attributes, not identity.
#
# status is COMPLETE iff remaining and introduced are both empty.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

from pipegap.analysis.pattern_classifier import run_gap_analysis
from pipegap.analysis.patterns import DEFAULT_PATTERN_TABLE, PatternRule
from pipegap.core.records import Gap, Severity, sort_gaps
from pipegap.core.topology import TopologyModel


class VerificationStatus(str, Enum):
    COMPLETE        = "COMPLETE"
    NEEDS_ITERATION = "NEEDS_ITERATION"


@dataclass(frozen=True)
class VerificationReport:
    """
    Diff of two Gap Reports.

    iteration counts remediation rounds, starting at 1.
    gaps is the full post-mutation report G1, in canonical order.
    """
    closed:     Tuple[Gap, ...]
    remaining:  Tuple[Gap, ...]
    introduced: Tuple[Gap, ...]
    status:     VerificationStatus
    iteration:  int = 1
    gaps:       Tuple[Gap, ...] = ()

    @property
    def complete(self) -> bool:
        return self.status is VerificationStatus.COMPLETE

    @property
    def open_gaps(self) -> Tuple[Gap, ...]:
        return sort_gaps(self.remaining + self.introduced)

    def open_at_or_above(self, threshold: Severity) -> Tuple[Gap, ...]:
        return tuple(g for g in self.open_gaps if g.severity.rank >= threshold.rank)

    def summary(self) -> str:
        return (
            "iteration " + str(self.iteration) + ": " + self.status.value
            + " (closed=" + str(len(self.closed))
            + ", remaining=" + str(len(self.remaining))
            + ", introduced=" + str(len(self.introduced)) + ")"
        )


def diff_gap_reports(
    prior: Iterable[Gap],
    current: Iterable[Gap],
    iteration: int = 1,
) -> VerificationReport:
    if iteration < 1:
        raise ValueError("iteration must be >= 1; got: {}".format(iteration))
    prior_gaps = sort_gaps(prior)
    current_gaps = sort_gaps(current)
    prior_keys = {g.key for g in prior_gaps}
    current_keys = {g.key for g in current_gaps}

    closed = tuple(g for g in prior_gaps if g.key not in current_keys)
    remaining = tuple(g for g in current_gaps if g.key in prior_keys)
    introduced = tuple(g for g in current_gaps if g.key not in prior_keys)

    if remaining or introduced:
        status = VerificationStatus.NEEDS_ITERATION
    else:
        status = VerificationStatus.COMPLETE
    return VerificationReport(
        closed=closed,
        remaining=remaining,
        introduced=introduced,
        status=status,
        iteration=iteration,
        gaps=current_gaps,
    )


def verify(
    prior_gaps: Iterable[Gap],
    topology: TopologyModel,
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    iteration: int = 1,
    max_iterations: Optional[int] = None,
) -> VerificationReport:
    """
    Re-analyse the mutated topology and diff against prior_gaps.

    Raises whatever the analysis raises (SchemaViolation, CycleDivergence).
    """
    current = run_gap_analysis(topology, table, max_iterations)
    return diff_gap_reports(prior_gaps, current, iteration)


__all__ = [
    "VerificationStatus",
    "VerificationReport",
    "diff_gap_reports",
    "verify",
]
