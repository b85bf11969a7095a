"""
Input validation functions for the Cake Order Tracker application.

This module provides validation functions for service inputs including:
- String validation (length, required fields)
- Integer validation (positive, non-negative)
- Enum value parsing
- Cake specification validation
"""

from enum import Enum
from typing import Any, Optional, Tuple, Type

from .constants import (
    MAX_CAKE_TIERS,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_SPEC_LENGTH,
)

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_INTEGER = "Must be a whole number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: str, max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    """
    Validate that a string doesn't exceed maximum length.

    Args:
        value: The string value to validate
        max_length: Maximum allowed length
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def validate_positive_integer(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is an integer greater than zero.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field_name}: {ERROR_INVALID_INTEGER}"
    if value <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def validate_non_negative_integer(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """Validate that a value is an integer >= 0."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field_name}: {ERROR_INVALID_INTEGER}"
    if value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def parse_enum(
    enum_cls: Type[Enum], value: Any, field_name: str = "Field"
) -> Tuple[Optional[Enum], str]:
    """
    Convert a raw value (member or wire string) into an enum member.

    Returns:
        Tuple of (member or None, error_message)
    """
    if isinstance(value, enum_cls):
        return value, ""
    try:
        return enum_cls(value), ""
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        return None, f"{field_name}: '{value}' is not one of {allowed}"


def validate_cake_spec(data: dict, partial: bool = False) -> Tuple[bool, list]:
    """
    Validate the cake specification fields of an order.

    Args:
        data: Dictionary with any of cake_shape, cake_size, cake_flavor,
              cake_tier, customer_name, notes
        partial: If True, only validate the keys present (updates)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    for key, label in (
        ("cake_shape", "Cake shape"),
        ("cake_size", "Cake size"),
        ("cake_flavor", "Cake flavor"),
    ):
        if partial and key not in data:
            continue
        value = data.get(key)
        is_valid, error = validate_required_string(value, label)
        if not is_valid:
            errors.append(error)
            continue
        is_valid, error = validate_string_length(value, MAX_SPEC_LENGTH, label)
        if not is_valid:
            errors.append(error)

    if "cake_tier" in data:
        is_valid, error = validate_positive_integer(data["cake_tier"], "Cake tier")
        if not is_valid:
            errors.append(error)
        elif data["cake_tier"] > MAX_CAKE_TIERS:
            errors.append(f"Cake tier: Must be {MAX_CAKE_TIERS} or less")

    if data.get("customer_name"):
        is_valid, error = validate_string_length(
            data["customer_name"], MAX_NAME_LENGTH, "Customer name"
        )
        if not is_valid:
            errors.append(error)

    if data.get("notes"):
        is_valid, error = validate_string_length(data["notes"], MAX_NOTES_LENGTH, "Notes")
        if not is_valid:
            errors.append(error)

    return len(errors) == 0, errors


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Sanitize a string value by stripping whitespace and converting empty strings to None.

    Args:
        value: The string value to sanitize

    Returns:
        Sanitized string or None
    """
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
