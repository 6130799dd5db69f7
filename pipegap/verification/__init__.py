# pipegap/verification/__init__.py
# Verification Loop: re-analysis of a mutated topology and gap diffing.

from .verification_loop import (
    VerificationStatus,
    VerificationReport,
    diff_gap_reports,
    verify,
)

__all__ = [
    "VerificationStatus",
    "VerificationReport",
    "diff_gap_reports",
    "verify",
]
