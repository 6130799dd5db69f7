# pipegap/deliberation/__init__.py
# Version: 1.0.0

from pipegap.deliberation.engine import DeliberationEngine, deliberate_fixes
from pipegap.deliberation.applier import apply_fix, apply_fixes, apply_deliberated_fixes

__all__ = [
    "DeliberationEngine",
    "deliberate_fixes",
    "apply_fix",
    "apply_fixes",
    "apply_deliberated_fixes",
]
