# pipegap/storage/report_serializer.py
# ReportSerializer -- writes Gap Reports, deliberation verdicts and
# verification results to JSON files.
#
# File name format: {run_id}_{stage}_{timestamp}.json
# The output directory is created if it does not exist.
#
# Enum members are written as their .value strings, subjects as
# {"kind", "id"} pairs and transitions as [source, target]. Every list is
# already in canonical order, so identical inputs produce identical bytes.

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from pipegap.core.records import DeliberationVerdict, Fix, Gap
from pipegap.core.topology import Subject, Transition
from pipegap.utils.constants import PIPEGAP_VERSION, STORAGE_FORMAT_VERSION
from pipegap.verification.verification_loop import VerificationReport


def _serialize_subject(s: Subject) -> dict:
    return {"kind": s.kind.value, "id": s.id}


def _serialize_transition(t: Transition) -> list:
    return [t.source, t.target]


def serialize_gap(gap: Gap) -> dict:
    return {
        "transition": _serialize_transition(gap.transition),
        "missing":    [_serialize_subject(s) for s in sorted(gap.missing)],
        "pattern":    gap.pattern,
        "severity":   gap.severity.value,
        "cycle":      sorted(gap.cycle),
        "flagged":    gap.flagged,
    }


def serialize_fix(fix: Fix) -> dict:
    if isinstance(fix.target, Transition):
        target = {"from": fix.target.source, "to": fix.target.target}
    else:
        target = fix.target
    return {
        "target":      target,
        "action":      fix.action.value,
        "subject":     fix.subject.id,
        "kind":        fix.subject.kind.value.lower(),
        "slot":        fix.slot.value if fix.slot is not None else None,
        "destination": fix.destination,
        "rationale":   fix.rationale,
    }


def serialize_verdict(v: DeliberationVerdict) -> dict:
    return {
        "proposed":   serialize_fix(v.proposed),
        "fix":        serialize_fix(v.fix),
        "verdict":    v.verdict.value,
        "detail":     v.detail,
        "candidates": list(v.candidates),
        "trail":      [s.value for s in v.trail],
    }


def serialize_verification(report: VerificationReport) -> dict:
    return {
        "status":     report.status.value,
        "iteration":  report.iteration,
        "closed":     [serialize_gap(g) for g in report.closed],
        "remaining":  [serialize_gap(g) for g in report.remaining],
        "introduced": [serialize_gap(g) for g in report.introduced],
    }


class ReportSerializer:
    """
    Serializes one analysis stage to a JSON file.
    The payload header carries format and tool versions for the loader.
    """

    def build_payload(
        self,
        gaps:          Iterable[Gap],
        run_id:        str,
        stage:         str,
        topology_name: str = "",
        digest:        str = "",
        verdicts:      Iterable[DeliberationVerdict] = (),
        verification:  Optional[VerificationReport] = None,
    ) -> dict:
        gap_list = [serialize_gap(g) for g in gaps]
        return {
            "format_version":  STORAGE_FORMAT_VERSION,
            "pipegap_version": PIPEGAP_VERSION,
            "run_id":          run_id,
            "stage":           stage,
            "topology":        topology_name,
            "digest":          digest,
            "gap_count":       len(gap_list),
            "gaps":            gap_list,
            "verdicts":        [serialize_verdict(v) for v in verdicts],
            "verification":    serialize_verification(verification) if verification else None,
        }

    def serialize(
        self,
        payload:   dict,
        runs_dir:  Path,
        timestamp: Optional[datetime] = None,
    ) -> Path:
        """
        Write payload to a JSON file in runs_dir.
        Returns the path of the written file.
        """
        runs_dir = Path(runs_dir)
        runs_dir.mkdir(parents=True, exist_ok=True)

        ts       = (timestamp or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
        filename = f"{payload['run_id']}_{payload['stage']}_{ts}.json"
        filepath = runs_dir / filename

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)

        return filepath


def write_report(
    gaps:      Iterable[Gap],
    runs_dir:  Path,
    run_id:    str,
    stage:     str,
    timestamp: Optional[datetime] = None,
    **extra,
) -> Path:
    serializer = ReportSerializer()
    payload = serializer.build_payload(gaps, run_id, stage, **extra)
    return serializer.serialize(payload, runs_dir, timestamp)
