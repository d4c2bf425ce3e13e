"""Shared normalization helpers for user credential inputs."""

from __future__ import annotations


def normalize_user_email(*, email: str) -> str:
    """Normalize one user email and reject blank values."""

    normalized = email.strip().lower()
    if not normalized:
        raise ValueError("email cannot be blank")
    return normalized


def normalize_display_name(*, display_name: str) -> str:
    """Collapse inner whitespace of a display name and reject blank values."""

    normalized = " ".join(display_name.split())
    if not normalized:
        raise ValueError("display name cannot be blank")
    return normalized
