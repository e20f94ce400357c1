"""
Domain enums shared by the ordering, predicate and cursor modules.
"""

from enum import Enum


class OrderByDirection(str, Enum):
    """Sort direction of one ordering entry."""

    ASC = "ASC"
    DESC = "DESC"

    def flipped(self) -> "OrderByDirection":
        return OrderByDirection.DESC if self is OrderByDirection.ASC else OrderByDirection.ASC


class ComparisonOperator(str, Enum):
    """Operators used in keyset predicate clauses."""

    EQUAL = "="
    GREATER_THAN = ">"
    LESS_THAN = "<"


class PaginationDirection(str, Enum):
    """Which Relay argument pair is active for a request."""

    FORWARD = "forward"
    BACKWARD = "backward"
