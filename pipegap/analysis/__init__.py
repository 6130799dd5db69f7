# pipegap/analysis/__init__.py
# Contract Matcher and Pattern Classifier.

from pipegap.analysis.contract_matcher import (
    TransitionGap,
    MatchResult,
    compute_availability,
    match_contracts,
)
from pipegap.analysis.patterns import (
    GapContext,
    PatternRule,
    PatternScope,
    DEFAULT_PATTERN_TABLE,
    select_patterns,
)
from pipegap.analysis.pattern_classifier import classify_gaps, run_gap_analysis

__all__ = [
    "TransitionGap",
    "MatchResult",
    "compute_availability",
    "match_contracts",
    "GapContext",
    "PatternRule",
    "PatternScope",
    "DEFAULT_PATTERN_TABLE",
    "select_patterns",
    "classify_gaps",
    "run_gap_analysis",
]
