"""Shared configuration validation helpers."""

from __future__ import annotations


def require_positive_int(value: int, field_name: str) -> int:
    """Validate a positive integer input and return it."""
    if value <= 0:
        raise ValueError(f"{field_name} must be greater than zero.")
    return value


def require_non_negative_float(value: float, field_name: str) -> float:
    """Validate a non-negative number input and return it."""
    if value < 0:
        raise ValueError(f"{field_name} must be zero or greater.")
    return value


def require_positive_float(value: float, field_name: str) -> float:
    """Validate a strictly positive number input and return it."""
    if value <= 0:
        raise ValueError(f"{field_name} must be greater than zero.")
    return value


def validate_namespace(value: str) -> str:
    """Validate the reserved state directory name inside project repositories."""
    cleaned = value.strip().strip("/")
    if not cleaned:
        raise ValueError("namespace cannot be blank.")
    if not cleaned.startswith("."):
        raise ValueError("namespace must be a dotted directory such as '.prodev'.")
    if "/" in cleaned or ".." in cleaned:
        raise ValueError("namespace must be a single top-level directory name.")
    return cleaned
