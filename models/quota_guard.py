"""
Upload Quota Guard

Admission decision for new photo uploads. The stored-photo count is read by
the caller; this module only decides.

Note: MAX_UPLOADS_PER_DAY is a cumulative cap on photos currently stored for
a principal, not a rolling 24-hour window.
"""

from config import MAX_UPLOADS_PER_DAY


def check_quota(stored_count: int, limit: int = None) -> bool:
    """
    Decide whether one more upload is allowed.

    Args:
        stored_count: Photos currently stored for the principal
        limit: Cap to enforce (default: MAX_UPLOADS_PER_DAY)

    Returns:
        True if stored_count is below the cap
    """
    if limit is None:
        limit = MAX_UPLOADS_PER_DAY
    return stored_count < limit


def quota_message(limit: int = None) -> str:
    """User-facing message for a denied upload"""
    if limit is None:
        limit = MAX_UPLOADS_PER_DAY
    return f"Upload limit exceeded. Maximum {limit} photos allowed."
