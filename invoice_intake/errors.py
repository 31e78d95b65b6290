"""Exception hierarchy for upload intake failures.

Malformed individual cells are never raised; they degrade to defaults and
show up as per-record validation errors instead.
"""

from typing import Optional


class IntakeError(Exception):
    """Base exception for requests that cannot be processed at all."""


class MissingInputError(IntakeError):
    """No document or no declared invoicing period was supplied."""


class StructuralError(IntakeError):
    """The sheet layout is not recognized (e.g. no header row found)."""


class PeriodMismatchError(IntakeError):
    """The sheet's invoicing month does not match the declared period."""

    def __init__(self, declared: str, found: Optional[str]) -> None:
        self.declared = declared
        self.found = found
        super().__init__(
            f"Invalid or mismatched invoicing month: sheet has {found!r}, "
            f"expected {declared}. Expected format: YYYY-MM"
        )
