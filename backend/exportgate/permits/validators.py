"""
Per-permit-type validation strategies.

Validation is format-only: file presence, size and an extension allow-list
per permit type. Document content is not inspected; every passing report
carries a warning saying so.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePath

from exportgate.errors import ValidationFailed

CONTENT_NOT_VERIFIED = "Content validation not implemented - format check only"


@dataclass
class ValidationReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower().lstrip(".")


class PermitValidator(ABC):
    """Strategy interface: one instance per permit type."""

    def __init__(self, max_file_bytes: int):
        self.max_file_bytes = max_file_bytes

    def validate(self, permit_type: str, filename: str, content: bytes) -> ValidationReport:
        """Run common checks then the type-specific ones. Raises ValidationFailed."""
        errors = self._common_errors(filename, content)
        errors += self.check(filename, content)
        if errors:
            raise ValidationFailed(permit_type, errors)
        return ValidationReport(is_valid=True, warnings=[CONTENT_NOT_VERIFIED])

    def _common_errors(self, filename: str, content: bytes) -> list[str]:
        errors = []
        if not content:
            errors.append("File is empty")
        elif len(content) > self.max_file_bytes:
            errors.append(f"File too large (max {self.max_file_bytes // (1024 * 1024)}MB)")
        if not filename:
            errors.append("Filename is required")
        return errors

    @abstractmethod
    def check(self, filename: str, content: bytes) -> list[str]:
        """Type-specific checks; return a list of error messages."""


class ExtensionAllowListValidator(PermitValidator):
    def __init__(self, extensions: tuple[str, ...], max_file_bytes: int):
        super().__init__(max_file_bytes)
        self.extensions = tuple(e.lower().lstrip(".") for e in extensions)

    def check(self, filename: str, content: bytes) -> list[str]:
        ext = file_extension(filename)
        if ext not in self.extensions:
            allowed = ", ".join(e.upper() for e in self.extensions)
            return [f"Invalid file format '{ext or 'none'}'. Allowed: {allowed}"]
        return []
