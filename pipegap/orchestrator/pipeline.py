# pipegap/orchestrator/pipeline.py
# Version: 1.0.0
# External orchestration layer.
#
# PHASES (each one a synchronous checkpoint returning a result object):
#   SCAN        source document or model -> sealed TopologyModel
#   ANALYZE     Contract Matcher + Pattern Classifier -> Gap Report
#   DELIBERATE  proposed fixes -> per-fix verdicts
#   APPLY       PROCEED / REDESIGNED fixes -> new TopologyModel
#   VERIFY      re-analysis and diff against the prior Gap Report
#
# Nothing here prompts or blocks. A driver (CLI, test, agent) inspects each
# result and decides what to run next. run_remediation_loop() is the one
# driver shipped with the package.
#
# When an EventLogger is passed, every phase is recorded with
# log_phase(); timestamps come from the supplied clock.
#
# Standard import:
#   from pipegap.orchestrator.pipeline import analyze_topology, run_remediation_loop

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from pipegap.analysis.contract_matcher import match_contracts
from pipegap.analysis.pattern_classifier import classify_gaps
from pipegap.analysis.patterns import DEFAULT_PATTERN_TABLE, PatternRule
from pipegap.core.exceptions import IterationBudgetExhausted
from pipegap.core.integrity_layer import digest
from pipegap.core.logging_layer import EventLogger, Phase
from pipegap.core.records import DeliberationVerdict, Fix, Gap, Severity, Verdict
from pipegap.core.topology import TopologyModel
from pipegap.deliberation.applier import apply_deliberated_fixes
from pipegap.deliberation.engine import DeliberationEngine
from pipegap.governance.document_validator import validate_topology_document
from pipegap.ingestion.document_loader import build_topology, read_document
from pipegap.storage.report_serializer import serialize_gap
from pipegap.utils.constants import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_MAX_REMEDIATION_ITERATIONS,
)
from pipegap.verification.verification_loop import (
    VerificationReport,
    VerificationStatus,
    diff_gap_reports,
)

Clock = Callable[[], datetime]
ProposeFn = Callable[[TopologyModel, Tuple[Gap, ...]], Iterable[Fix]]
ApplyFn = Callable[[TopologyModel, Sequence[DeliberationVerdict]], TopologyModel]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _record(
    event_logger: Optional[EventLogger],
    clock: Clock,
    phase: Phase,
    data: Dict[str, Any],
) -> None:
    if event_logger is not None:
        event_logger.log_phase(phase, data, clock())


# ---------------------------------------------------------------------------
# Phase results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanResult:
    topology: TopologyModel
    warnings: tuple
    source:   str


@dataclass(frozen=True)
class AnalysisResult:
    """
    Gap Report for one topology snapshot.

    digest is SHA-256 over the topology document and the serialized gaps;
    identical inputs always give identical digests.
    """
    topology:     TopologyModel
    gaps:         Tuple[Gap, ...]
    availability: Mapping[str, frozenset]
    iterations:   int
    digest:       str

    def at_or_above(self, threshold: Severity) -> Tuple[Gap, ...]:
        return tuple(g for g in self.gaps if g.severity.rank >= threshold.rank)


@dataclass(frozen=True)
class DeliberationResult:
    verdicts: Tuple[DeliberationVerdict, ...]

    @property
    def accepted(self) -> Tuple[DeliberationVerdict, ...]:
        return tuple(v for v in self.verdicts if v.accepted)

    @property
    def flagged(self) -> Tuple[DeliberationVerdict, ...]:
        return tuple(v for v in self.verdicts if v.verdict is Verdict.FLAGGED)


@dataclass(frozen=True)
class ApplyResult:
    topology: TopologyModel
    applied:  Tuple[Fix, ...]
    skipped:  Tuple[DeliberationVerdict, ...]


@dataclass(frozen=True)
class RemediationResult:
    """
    Outcome of run_remediation_loop().

    reports holds one VerificationReport per iteration run; it is empty
    when the initial analysis already had nothing at or above halt_below.
    """
    topology:     TopologyModel
    initial:      AnalysisResult
    reports:      Tuple[VerificationReport, ...]
    deliberations: Tuple[DeliberationResult, ...]
    open_gaps:    Tuple[Gap, ...]

    @property
    def iterations(self) -> int:
        return len(self.reports)

    @property
    def status(self) -> VerificationStatus:
        if self.open_gaps:
            return VerificationStatus.NEEDS_ITERATION
        return VerificationStatus.COMPLETE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def scan_topology(
    source: Union[str, Path, Mapping, TopologyModel],
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    event_logger: Optional[EventLogger] = None,
    clock: Clock = _utc_now,
) -> ScanResult:
    """
    Build a sealed model from a document path, a parsed document, or an
    existing model (validated if not yet sealed).

    Raises SchemaViolation (TopologyDocumentRejected for document-level
    problems) and FileNotFoundError for a missing path.
    """
    if isinstance(source, TopologyModel):
        topology = source if source.sealed else source.validate()
        warnings: tuple = ()
        label = topology.name
    else:
        if isinstance(source, (str, Path)):
            document = read_document(source)
            label = str(source)
        else:
            document = dict(source)
            label = "<document>"
        warnings = validate_topology_document(document, confidence_threshold).warnings
        topology = build_topology(document, confidence_threshold, source=label)

    _record(event_logger, clock, Phase.SCAN, {
        "topology":    topology.name,
        "components":  len(topology.component_ids),
        "transitions": len(topology.transitions),
        "warnings":    len(warnings),
    })
    return ScanResult(topology=topology, warnings=warnings, source=label)


def analyze_topology(
    topology: TopologyModel,
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    max_iterations: Optional[int] = None,
    event_logger: Optional[EventLogger] = None,
    clock: Clock = _utc_now,
) -> AnalysisResult:
    """
    Raises
    ------
    SchemaViolation  : topology not validated.
    CycleDivergence  : availability did not stabilise.
    """
    match = match_contracts(topology, max_iterations)
    gaps = classify_gaps(topology, match, table)
    report_digest = digest({
        "topology": topology.to_document(),
        "gaps":     [serialize_gap(g) for g in gaps],
    })
    _record(event_logger, clock, Phase.ANALYZE, {
        "topology":   topology.name,
        "gaps":       len(gaps),
        "iterations": match.iterations,
        "digest":     report_digest,
    })
    return AnalysisResult(
        topology=topology,
        gaps=gaps,
        availability=match.availability,
        iterations=match.iterations,
        digest=report_digest,
    )


def deliberate(
    topology: TopologyModel,
    fixes: Iterable[Fix],
    event_logger: Optional[EventLogger] = None,
    clock: Clock = _utc_now,
) -> DeliberationResult:
    result = DeliberationResult(DeliberationEngine(topology).deliberate(fixes))
    if event_logger is not None:
        for v in result.flagged:
            event_logger.log_event("FIX_FLAGGED", {
                "fix":        str(v.proposed),
                "detail":     v.detail,
                "candidates": list(v.candidates),
            }, clock())
    _record(event_logger, clock, Phase.DELIBERATE, {
        "proposed":   len(result.verdicts),
        "accepted":   len(result.accepted),
        "flagged":    len(result.flagged),
    })
    return result


def apply(
    topology: TopologyModel,
    deliberation: DeliberationResult,
    applier: ApplyFn = apply_deliberated_fixes,
    event_logger: Optional[EventLogger] = None,
    clock: Clock = _utc_now,
) -> ApplyResult:
    """Raises SchemaViolation if an accepted fix breaks an invariant when combined."""
    mutated = applier(topology, deliberation.verdicts)
    result = ApplyResult(
        topology=mutated,
        applied=tuple(v.fix for v in deliberation.accepted),
        skipped=deliberation.flagged,
    )
    _record(event_logger, clock, Phase.APPLY, {
        "applied": len(result.applied),
        "skipped": len(result.skipped),
    })
    return result


def verify_topology(
    prior_gaps: Iterable[Gap],
    topology: TopologyModel,
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    iteration: int = 1,
    max_iterations: Optional[int] = None,
    event_logger: Optional[EventLogger] = None,
    clock: Clock = _utc_now,
) -> VerificationReport:
    current = analyze_topology(topology, table, max_iterations)
    report = diff_gap_reports(prior_gaps, current.gaps, iteration)
    _record(event_logger, clock, Phase.VERIFY, {
        "iteration":  report.iteration,
        "status":     report.status,
        "closed":     len(report.closed),
        "remaining":  len(report.remaining),
        "introduced": len(report.introduced),
    })
    return report


def run_remediation_loop(
    topology: TopologyModel,
    propose: ProposeFn,
    apply_fn: ApplyFn = apply_deliberated_fixes,
    max_iterations: int = DEFAULT_MAX_REMEDIATION_ITERATIONS,
    halt_below: Severity = Severity.HIGH,
    table: Sequence[PatternRule] = DEFAULT_PATTERN_TABLE,
    event_logger: Optional[EventLogger] = None,
    clock: Clock = _utc_now,
) -> RemediationResult:
    """
    Analyze, then repeat propose -> deliberate -> apply -> verify.

    Stops when verification is COMPLETE or no open gap is at or above
    halt_below. propose(topology, open_gaps) is the external decision-maker.

    Raises
    ------
    IterationBudgetExhausted : still open at or above halt_below after
                               max_iterations rounds.
    ValueError               : max_iterations < 1.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be >= 1; got: {}".format(max_iterations))

    initial = analyze_topology(topology, table, event_logger=event_logger, clock=clock)
    current = topology
    open_gaps = initial.gaps
    reports = []
    deliberations = []

    for iteration in range(1, max_iterations + 1):
        if not any(g.severity.rank >= halt_below.rank for g in open_gaps):
            break
        fixes = tuple(propose(current, open_gaps))
        deliberation = deliberate(current, fixes, event_logger, clock)
        deliberations.append(deliberation)
        current = apply(current, deliberation, apply_fn, event_logger, clock).topology
        report = verify_topology(
            open_gaps, current, table, iteration,
            event_logger=event_logger, clock=clock,
        )
        reports.append(report)
        open_gaps = report.open_gaps
    else:
        if any(g.severity.rank >= halt_below.rank for g in open_gaps):
            raise IterationBudgetExhausted(max_iterations, len(open_gaps))

    return RemediationResult(
        topology=current,
        initial=initial,
        reports=tuple(reports),
        deliberations=tuple(deliberations),
        open_gaps=open_gaps,
    )
