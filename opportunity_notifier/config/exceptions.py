"""Configuration errors."""

from typing import List, Optional


class ConfigurationError(Exception):
    """Raised when the configuration file or environment is unusable.

    Collects every problem found during loading so an operator can fix them
    in one pass, and renders them with optional remediation hints.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Args:
            message: Headline describing what failed
            errors: Individual problems, one per entry
            suggestions: Remediation hints shown after the errors
        """
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [self.message]

        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {i}. {error}" for i, error in enumerate(self.errors, 1))

        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)

        return "\n".join(lines)
