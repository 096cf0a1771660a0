"""
Business-rule validation for the Storefront service.

Provides checks that go beyond schema validation: order status transitions
and catalogue query normalisation.
"""
from typing import Optional, Tuple

from .models import ORDER_STATUSES, USER_ROLES

# Each status may only move one step forward
ORDER_TRANSITIONS = {
    "processing": ["shipped"],
    "shipped": ["delivered"],
    "delivered": [],  # Terminal state
}

PRODUCT_SORTS = ("price_asc", "price_desc", "newest", "oldest")
CATALOGUE_LIMIT_CAP = 200
HIGHLIGHT_LIMIT_DEFAULT = 10
HIGHLIGHT_LIMIT_CAP = 20


def validate_order_status_transition(old_status: str, new_status: Optional[str]) -> Tuple[bool, str]:
    """
    Validate that a status transition is allowed.

    Args:
        old_status: Current order status
        new_status: Requested order status

    Returns:
        Tuple of (is_valid, error_message)
    """
    if new_status not in ORDER_STATUSES:
        return False, "Invalid status"

    if old_status == new_status:
        return True, ""  # No change is valid

    if new_status not in ORDER_TRANSITIONS.get(old_status, []):
        return False, f"Invalid status transition: {old_status} -> {new_status}"

    return True, ""


def validate_role(role: Optional[str]) -> Tuple[bool, str]:
    if role not in USER_ROLES:
        return False, "Invalid role"
    return True, ""


def normalize_catalogue_limit(limit: Optional[int]) -> int:
    """
    Clamp the catalogue page size. Zero or a missing value means no limit.

    Returns:
        The effective limit, 0 meaning unlimited
    """
    if not limit or limit < 0:
        return 0
    return min(limit, CATALOGUE_LIMIT_CAP)


def normalize_highlight_limit(limit: Optional[int]) -> int:
    """Limit for trending, offers and featured lists: default 10, at most 20."""
    if not limit or limit < 0:
        return HIGHLIGHT_LIMIT_DEFAULT
    return min(limit, HIGHLIGHT_LIMIT_CAP)
