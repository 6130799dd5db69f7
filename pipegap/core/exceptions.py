# =============================================================================
# PIPEGAP v1.0.0 -- CONTRACT-GAP ANALYSIS CORE
# File:   pipegap/core/exceptions.py
# =============================================================================
#
# SCOPE
# -----
# Exception hierarchy for the analysis core. All exceptions are pure value
# objects: no side effects, no logging, no I/O, no domain imports. Callers
# pass identifiers and descriptions as plain strings so this module stays a
# leaf dependency.
#
# EXCEPTION HIERARCHY
# -------------------
#   GapAnalysisError(Exception)                 -- base; never raised directly
#     SchemaViolation(GapAnalysisError)         -- malformed input / invariant breach (fatal)
#     CycleDivergence(GapAnalysisError)         -- fixed point did not stabilise (fatal)
#     ClassificationAmbiguity(GapAnalysisError) -- no rule matched (recovered as UNCLASSIFIED)
#     DeliberationUncertain(GapAnalysisError)   -- dependents unknown (recovered as FLAGGED)
#     IterationBudgetExhausted(GapAnalysisError)-- remediation loop over budget (fatal)
#
# MESSAGE CONTRACT
# ----------------
# Every message is deterministic (identical inputs -> identical string),
# names the location of the problem, and is ASCII-safe.
# =============================================================================

from __future__ import annotations

from typing import Any, Sequence


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class GapAnalysisError(Exception):
    """
    Base class for all analysis-core exceptions.

    Attributes:
        message:   Human-readable description. Always non-empty.
        location:  Where the problem was found (component id, transition,
                   document path such as "components[2].reads"), or empty.
        value:     The offending value, or None when not applicable.
    """

    def __init__(
        self,
        message:  str,
        location: str = "",
        value:    Any = None,
    ) -> None:
        if not isinstance(message, str) or not message:
            raise ValueError(
                "GapAnalysisError: message must be a non-empty string"
            )
        if not isinstance(location, str):
            raise ValueError(
                "GapAnalysisError: location must be a string"
            )
        super().__init__(message)
        self.message:  str = message
        self.location: str = location
        self.value:    Any = value

    def __repr__(self) -> str:
        return (
            self.__class__.__name__
            + "(location=" + repr(self.location)
            + ", value=" + repr(self.value)
            + ", message=" + repr(self.message)
            + ")"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GapAnalysisError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.location == other.location
            and self.value == other.value
            and self.message == other.message
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.location, self.message))


# =============================================================================
# CONCRETE EXCEPTIONS
# =============================================================================

class SchemaViolation(GapAnalysisError):
    """
    Raised when topology input is malformed or a model invariant is breached.

    Fatal to the current pass. Raised by document ingestion (missing keys,
    wrong types), by TopologyModel.validate() (unknown component in a
    transition, passthrough/writes overlap, undeclared field) and by the
    deliberation engine when a rewritten fix would break an invariant.

    Message format:
        "SchemaViolation at '<location>': <detail>"

    Args:
        location:    Non-empty location string.
        detail:      Non-empty description of the breach.
        value:       Offending value, if any.
        violations:  Optional sequence of document-level violation records
                     that were collected before raising.
    """

    def __init__(
        self,
        location:   str,
        detail:     str,
        value:      Any = None,
        violations: Sequence[Any] = (),
    ) -> None:
        if not location:
            raise ValueError(
                "SchemaViolation: location must be a non-empty string"
            )
        if not isinstance(detail, str) or not detail:
            raise ValueError(
                "SchemaViolation: detail must be a non-empty string"
            )
        message = "SchemaViolation at '" + location + "': " + detail
        super().__init__(message=message, location=location, value=value)
        self.detail:     str   = detail
        self.violations: tuple = tuple(violations)


class CycleDivergence(GapAnalysisError):
    """
    Raised when the availability fixed point is still growing at the cap.

    A legitimate loop stabilises in at most |components| rounds. Growth past
    the cap means the topology is degenerate.

    Args:
        iterations:  Number of rounds executed.
        cap:         The iteration cap that was hit.
        growing:     Component ids whose available set was still changing.
    """

    def __init__(
        self,
        iterations: int,
        cap:        int,
        growing:    Sequence[str],
    ) -> None:
        growing_sorted = tuple(sorted(growing))
        message = (
            "CycleDivergence: availability did not stabilise after "
            + str(iterations)
            + " round(s) (cap "
            + str(cap)
            + "); still growing at "
            + repr(list(growing_sorted))
            + "."
        )
        super().__init__(
            message=message,
            location=",".join(growing_sorted),
            value=iterations,
        )
        self.iterations: int   = iterations
        self.cap:        int   = cap
        self.growing:    tuple = growing_sorted


class ClassificationAmbiguity(GapAnalysisError):
    """
    Raised when no rule in the pattern table matches a gap.

    Never escapes the classifier: it is caught where it is raised and the
    gap is recorded as UNCLASSIFIED with severity MEDIUM.
    """

    def __init__(self, transition: str, missing: Sequence[str]) -> None:
        if not transition:
            raise ValueError(
                "ClassificationAmbiguity: transition must be non-empty"
            )
        missing_sorted = tuple(sorted(missing))
        message = (
            "ClassificationAmbiguity: no pattern matched gap on "
            + transition
            + " missing "
            + repr(list(missing_sorted))
            + "."
        )
        super().__init__(message=message, location=transition, value=missing_sorted)
        self.missing: tuple = missing_sorted


class DeliberationUncertain(GapAnalysisError):
    """
    Raised inside the deliberation engine when the dependents of a subject
    cannot be determined with confidence.

    Recovered as a FLAGGED verdict; the reason and any candidate owners are
    surfaced to the external decision-maker.
    """

    def __init__(
        self,
        fix:        str,
        reason:     str,
        candidates: Sequence[str] = (),
    ) -> None:
        if not fix:
            raise ValueError("DeliberationUncertain: fix must be non-empty")
        if not isinstance(reason, str) or not reason:
            raise ValueError("DeliberationUncertain: reason must be non-empty")
        message = "DeliberationUncertain: " + fix + " -- " + reason
        super().__init__(message=message, location=fix, value=tuple(candidates))
        self.reason:     str   = reason
        self.candidates: tuple = tuple(candidates)


class IterationBudgetExhausted(GapAnalysisError):
    """
    Raised when the remediation loop reaches its iteration budget without
    a COMPLETE verification. The loop is aborted, never left running.
    """

    def __init__(self, max_iterations: int, open_gaps: int) -> None:
        message = (
            "IterationBudgetExhausted: verification not COMPLETE after "
            + str(max_iterations)
            + " iteration(s); "
            + str(open_gaps)
            + " gap(s) still open."
        )
        super().__init__(
            message=message,
            location="remediation_loop",
            value=max_iterations,
        )
        self.max_iterations: int = max_iterations
        self.open_gaps:      int = open_gaps


__all__ = [
    "GapAnalysisError",
    "SchemaViolation",
    "CycleDivergence",
    "ClassificationAmbiguity",
    "DeliberationUncertain",
    "IterationBudgetExhausted",
]
