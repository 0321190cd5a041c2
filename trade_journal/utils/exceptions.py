from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    OWNERSHIP = "ownership"
    VALIDATION = "validation"
    STORAGE = "storage"
    SYSTEM = "system"


class JournalError(Exception):
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
    ) -> None:
        self.message = message
        self.category = category
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class OwnershipConflict(JournalError):
    """A child was attached to a parent while another parent owns it."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.OWNERSHIP)


class ValidationFailure(JournalError):
    def __init__(self, message: str, field: Optional[str] = None, value: Any = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message, ErrorCategory.VALIDATION)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.field:
            parts.append(f"Field: {self.field}")
        return " | ".join(parts)
