"""
Deterministic SHA-256 helpers for the keys the stores deduplicate on.
"""

from __future__ import annotations

import hashlib

__all__ = [
    "compute_digest",
    "normalize_name",
    "notification_event_hash",
]


def compute_digest(value: str, *, namespace: str) -> str:
    """
    Compute a namespaced hex SHA-256 digest.

    Args:
        value: Raw string value to hash (normalized by caller).
        namespace: Logical namespace to avoid cross-field collisions.
    """
    scoped = f"{namespace}:{value or ''}"
    return hashlib.sha256(scoped.encode("utf-8")).hexdigest()


def normalize_name(name: str | None) -> str:
    """Case-insensitive identity of an artist name."""
    return (name or "").strip().lower()


def notification_event_hash(user_id: str, event_id: str) -> str:
    """
    Dedup key of a notification. Depends on the user and the event only;
    the channel is part of the unique index, not of the hash.
    """
    return compute_digest(f"{user_id}-{event_id}", namespace="notification")
