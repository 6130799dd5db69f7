# pipegap/cli/run_analysis.py
# Contract-gap analysis -- command-line entry point.
#
# Standard invocation:
#   python -m pipegap.cli.run_analysis topology.yaml
#
# Verify a revised topology against the original:
#   python -m pipegap.cli.run_analysis topology.yaml --updated revised.yaml
#
# Deliberate and apply a proposed fix document, then verify:
#   python -m pipegap.cli.run_analysis topology.yaml --fixes fixes.yaml \
#       --output-dir runs
#
# With neither --updated nor --fixes the topology is verified against
# itself, so the result is COMPLETE exactly when it has no gaps.
#
# EXIT CODES:
#   0  -- Verification COMPLETE.
#   1  -- Gaps remain or were introduced.
#   2  -- An input path does not exist.
#   3  -- SchemaViolation, CycleDivergence or an exhausted budget.

import argparse
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pipegap.core.exceptions import (
    CycleDivergence,
    IterationBudgetExhausted,
    SchemaViolation,
)
from pipegap.core.records import Verdict
from pipegap.ingestion.document_loader import load_fix_document
from pipegap.orchestrator.pipeline import (
    analyze_topology,
    apply,
    deliberate,
    scan_topology,
    verify_topology,
)
from pipegap.storage.report_serializer import ReportSerializer
from pipegap.utils.constants import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    EXIT_ANALYSIS_ABORTED,
    EXIT_COMPLETE,
    EXIT_INVALID_PATH,
    EXIT_UNRESOLVED_GAPS,
    PIPEGAP_VERSION,
)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"pipegap contract-gap analysis v{PIPEGAP_VERSION}",
        prog="pipegap",
    )
    parser.add_argument(
        "target",
        help="Topology document (.yaml, .yml or .json).",
    )
    revision = parser.add_mutually_exclusive_group()
    revision.add_argument(
        "--updated",
        default=None,
        help="Revised topology document to verify against the target.",
    )
    revision.add_argument(
        "--fixes",
        default=None,
        help="Proposed fix document to deliberate, apply and verify.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for JSON reports. Nothing is written when omitted.",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Cap on availability fixed-point rounds (default: components + 1).",
    )
    parser.add_argument(
        "--confidence-threshold",
        type=float,
        default=DEFAULT_CONFIDENCE_THRESHOLD,
        help="Components below this extraction confidence are treated as UNCLEAR.",
    )
    args = parser.parse_args(argv)
    if args.max_iterations is not None and args.max_iterations < 1:
        parser.error(f"--max-iterations must be >= 1; got: {args.max_iterations}")
    return args


def _missing_paths(args: argparse.Namespace) -> List[str]:
    paths = [args.target, args.updated, args.fixes]
    return [p for p in paths if p is not None and not Path(p).is_file()]


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run SCAN -> ANALYZE -> [DELIBERATE -> APPLY] -> VERIFY once.

    Returns the process exit code; never calls sys.exit() itself.
    """
    args = _parse_args(argv)

    missing = _missing_paths(args)
    if missing:
        for path in missing:
            sys.stderr.write(f"INVALID_PATH: {path} does not exist or is not a file.\n")
        return EXIT_INVALID_PATH

    run_id = "RUN-" + datetime.now(timezone.utc).strftime("%Y%m%d") + "-" + str(uuid.uuid4())[:8].upper()
    serializer = ReportSerializer()
    written: List[Path] = []

    try:
        scan = scan_topology(args.target, args.confidence_threshold)
        for warning in scan.warnings:
            sys.stderr.write(f"WARNING [{warning.rule_id}] {warning.location}: {warning.message}\n")
        analysis = analyze_topology(scan.topology, max_iterations=args.max_iterations)
        verdicts = ()

        if args.fixes is not None:
            fixes = load_fix_document(args.fixes)
            deliberation = deliberate(analysis.topology, fixes)
            verdicts = deliberation.verdicts
            revised = apply(analysis.topology, deliberation).topology
        elif args.updated is not None:
            revised = scan_topology(args.updated, args.confidence_threshold).topology
        else:
            revised = analysis.topology

        report = verify_topology(analysis.gaps, revised, max_iterations=args.max_iterations)
    except (SchemaViolation, CycleDivergence, IterationBudgetExhausted) as exc:
        sys.stderr.write(f"ANALYSIS_ABORTED: {exc.message}\n")
        return EXIT_ANALYSIS_ABORTED

    if args.output_dir is not None:
        out_dir = Path(args.output_dir)
        written.append(serializer.serialize(
            serializer.build_payload(
                analysis.gaps, run_id, "ANALYZE",
                topology_name=analysis.topology.name,
                digest=analysis.digest,
                verdicts=verdicts,
            ),
            out_dir,
        ))
        written.append(serializer.serialize(
            serializer.build_payload(
                report.gaps, run_id, "VERIFY",
                topology_name=revised.name,
                verification=report,
            ),
            out_dir,
        ))

    lines = [
        f"ANALYSIS RESULT: {report.status.value}",
        f"Run ID:          {run_id}",
        f"Topology:        {analysis.topology.name}",
        f"Gaps (initial):  {len(analysis.gaps)}",
        f"Closed:          {len(report.closed)}",
        f"Remaining:       {len(report.remaining)}",
        f"Introduced:      {len(report.introduced)}",
        f"Digest:          {analysis.digest[:16]}...",
    ]
    for v in verdicts:
        if v.verdict is Verdict.FLAGGED:
            lines.append(f"FLAGGED fix:     {v.proposed} -- {v.detail}")
    for gap in report.open_gaps:
        lines.append("  " + gap.describe())
    for path in written:
        lines.append(f"Report:          {path}")
    print("\n".join(lines))

    return EXIT_COMPLETE if report.complete else EXIT_UNRESOLVED_GAPS


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
