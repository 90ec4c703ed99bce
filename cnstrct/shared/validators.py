"""Shared validation utilities"""

from typing import Optional


def validate_positive_amount(amount: float) -> float:
    """
    Validate a money amount.

    Raises:
        ValueError: If the amount is not greater than zero
    """
    if amount is None or amount <= 0:
        raise ValueError("Amount must be greater than zero")
    return round(float(amount), 2)


def validate_required_text(value: Optional[str], field: str) -> str:
    """Strip a required text field, rejecting blanks"""
    if value is None or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()
