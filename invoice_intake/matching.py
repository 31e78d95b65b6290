"""
Header matching policies.

A matcher decides whether a (lower-cased) column label satisfies a
(lower-cased) mandatory field name. The header locator takes the matcher
as a parameter so the policy can be swapped without touching extraction.
"""

from typing import Callable

# Takes (column_label, field_name), both lower-cased
FieldMatcher = Callable[[str, str], bool]


def substring_match(column_label: str, field: str) -> bool:
    """A label satisfies a field when it contains the field name."""
    return field in column_label


def exact_match(column_label: str, field: str) -> bool:
    """A label satisfies a field only when it equals the field name."""
    return column_label.strip() == field


def normalize_fields(fields: list[str]) -> list[str]:
    """
    Lower-case, strip and de-duplicate field names, preserving their order.

    Raises:
        ValueError: If no usable field names remain
    """
    normalized = list(dict.fromkeys(
        field.strip().lower() for field in fields if field and field.strip()
    ))
    if not normalized:
        raise ValueError("At least one mandatory field is required")
    return normalized
