"""
Enum Utilities for VARCHAR-based Status Fields

ARCHITECTURE STANDARD:
━━━━━━━━━━━━━━━━━━━━━
• Database: VARCHAR - NOT PostgreSQL ENUM
• SQLAlchemy: String(n) with Mapped[str]
• Pydantic / services: Python str-Enum for validation and exhaustive handling
• API Response: Use string directly (NO .value needed)
• Case: values are lowercase, matching the payment and settings subsystems

DATA FLOW:
━━━━━━━━━━
INPUT (API Request / event):
    Pydantic Enum → .value → String → Database
    Example: ProductType.ZAKAT → "zakat" → VARCHAR

OUTPUT (API Response):
    Database → String → Return directly
"""

from enum import Enum
from typing import Any, Optional, Type


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(ProductType.ZAKAT)
        'zakat'
        >>> get_enum_value("zakat")
        'zakat'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """
    Generate a comment string for VARCHAR column.

    Examples:
        >>> enum_comment(FormulaType)
        'A, B, EXEMPT'
    """
    return ", ".join(enum_values(enum_class))

