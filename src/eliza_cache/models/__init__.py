"""SQLAlchemy ORM models and shared enums for eliza-cache."""

import enum
from typing import TypeVar, Type

from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""

# Type variable for enum self-reference
T = TypeVar('T', bound='CaseInsensitiveStrEnum')

class CaseInsensitiveStrEnum(enum.StrEnum):
    """Base class for case-insensitive string enums."""

    @classmethod
    def from_string(cls: Type[T], value: str) -> T:
        """Get enum value from string with case-insensitive matching.

        Args:
            value: String value to match (case-insensitive)

        Returns:
            Matching enum value

        Raises:
            ValueError: If no matching enum value found
        """
        if not value:
            raise ValueError(f"Empty value cannot be converted to {cls.__name__}")

        try:
            return cls(value)
        except ValueError:
            pass

        value_lower = value.lower()
        for enum_val in cls:
            if enum_val.value.lower() == value_lower:
                return enum_val

        # Member names match too, so "filesystem" resolves to "fs"
        for enum_val in cls:
            if enum_val.name.lower() == value_lower:
                return enum_val

        valid_values = [enum_val.value for enum_val in cls]
        raise ValueError(f"'{value}' is not a valid {cls.__name__}. Valid values: {valid_values}")

    @classmethod
    def normalize(cls: Type[T], value: str | T) -> T:
        """Normalize a value to the correct enum format.

        Args:
            value: String or enum value to normalize

        Returns:
            Normalized enum value
        """
        if isinstance(value, cls):
            return value
        return cls.from_string(value)

# Status enums
class BackendType(CaseInsensitiveStrEnum):
    MEMORY = "memory"
    FILESYSTEM = "fs"
    DATABASE = "database"

class CircuitState(CaseInsensitiveStrEnum):
    CLOSED = "CLOSED"          # Calls flow normally
    OPEN = "OPEN"              # Calls rejected until reset timeout elapses
    HALF_OPEN = "HALF_OPEN"    # Trial calls allowed

from .cache import CacheRecord

__all__ = [
    "BackendType",
    "Base",
    "CacheRecord",
    "CaseInsensitiveStrEnum",
    "CircuitState",
]
