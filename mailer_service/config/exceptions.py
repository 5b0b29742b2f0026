"""Custom exceptions for configuration management."""

from typing import Iterable, List, Optional


class ConfigurationError(Exception):
    """
    Raised when configuration (YAML file or environment) fails validation.

    Collects every problem found in one pass, together with hints on how to
    fix them, so operators do not have to iterate one error at a time.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[Iterable[str]] = None,
        suggestions: Optional[Iterable[str]] = None,
    ):
        self.message = message
        self.errors: List[str] = list(errors or [])
        self.suggestions: List[str] = list(suggestions or [])
        super().__init__(self.render())

    def render(self) -> str:
        """Format the message followed by numbered errors and bulleted suggestions."""
        lines = [self.message]

        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {i}. {error}" for i, error in enumerate(self.errors, 1))

        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)

        return "\n".join(lines)
