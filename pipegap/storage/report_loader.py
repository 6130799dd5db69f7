# pipegap/storage/report_loader.py
# ReportLoader -- loads and validates a serialized Gap Report.
#
# Validates format_version and gap_count, then restores Gap records with
# canonical enum instances. A loaded report can serve as the prior report
# G0 for verification in a later session.
#
# Any structural problem is reported as SchemaViolation; the file is never
# partially accepted.

import json
from pathlib import Path
from typing import Tuple, Union

from pipegap.core.exceptions import SchemaViolation
from pipegap.core.records import Gap, Severity, sort_gaps
from pipegap.core.topology import Subject, SubjectKind, Transition
from pipegap.utils.constants import STORAGE_FORMAT_VERSION


def _corrupt(location: str, detail: str, value: object = None) -> SchemaViolation:
    return SchemaViolation(location=location, detail="DATA_CORRUPTION: " + detail, value=value)


def _load_subject(d: dict, location: str) -> Subject:
    try:
        return Subject(SubjectKind(d["kind"]), d["id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise _corrupt(location, f"unreadable subject {d!r}", d) from exc


def _load_gap(d: dict, location: str) -> Gap:
    try:
        source, target = d["transition"]
        severity = Severity(d["severity"])
        return Gap(
            transition=Transition(source, target),
            missing=frozenset(
                _load_subject(s, f"{location}.missing[{i}]")
                for i, s in enumerate(d["missing"])
            ),
            pattern=str(d["pattern"]),
            severity=severity,
            cycle=frozenset(d.get("cycle", [])),
            flagged=bool(d.get("flagged", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise _corrupt(location, f"unreadable gap record: {exc}", d) from exc


class ReportLoader:
    """Loads a Gap Report written by ReportSerializer."""

    def load(self, filepath: Union[str, Path]) -> Tuple[Gap, ...]:
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"gap report not found: {filepath}")

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise _corrupt(str(filepath), f"report is not valid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise _corrupt(str(filepath), "report root must be an object")
        if payload.get("format_version") != STORAGE_FORMAT_VERSION:
            raise _corrupt(
                str(filepath),
                f"format_version mismatch. File: {payload.get('format_version')}, "
                f"Expected: {STORAGE_FORMAT_VERSION}.",
                payload.get("format_version"),
            )

        raw_gaps = payload.get("gaps", [])
        if not isinstance(raw_gaps, list) or payload.get("gap_count") != len(raw_gaps):
            raise _corrupt(
                str(filepath),
                f"gap_count={payload.get('gap_count')} does not match the gap list.",
            )

        return sort_gaps(
            _load_gap(d, f"{filepath}.gaps[{i}]") for i, d in enumerate(raw_gaps)
        )


def load_gap_report(filepath: Union[str, Path]) -> Tuple[Gap, ...]:
    return ReportLoader().load(filepath)
