"""Scanner: audit pipeline and inline suppression.

``craft_audit.scanner.engine`` is imported directly by callers; importing it
here would cycle through the template analyzer.
"""

from craft_audit.scanner.suppression import Suppression, SuppressionChecker, apply_inline_suppressions

__all__ = ["Suppression", "SuppressionChecker", "apply_inline_suppressions"]
