"""Password strength rules applied before a credential is created."""

from __future__ import annotations

import re
from typing import Final

# bcrypt only considers the first 72 bytes of a password.
MAX_PASSWORD_BYTES: Final[int] = 72

COMMON_WEAK_PASSWORDS: Final[frozenset[str]] = frozenset(
    {
        "password",
        "password1",
        "password123",
        "123456",
        "12345678",
        "123456789",
        "qwerty",
        "qwerty123",
        "abc123",
        "letmein",
        "iloveyou",
        "admin",
        "welcome",
        "welcome1",
        "monkey",
        "dragon",
        "football",
        "sunshine",
        "princess",
        "trustno1",
        "passw0rd",
        "p@ssw0rd",
        "p@ssword1",
    }
)

_UPPERCASE_RE = re.compile(r"[A-Z]")
_LOWERCASE_RE = re.compile(r"[a-z]")
_NUMBER_RE = re.compile(r"[0-9]")
_SPECIAL_RE = re.compile(r"[^A-Za-z0-9]")


def evaluate_password(
    password: str,
    *,
    min_length: int,
    email: str | None = None,
    display_name: str | None = None,
) -> list[str]:
    """Return ordered, de-duplicated violation codes for one candidate password."""

    violations: list[str] = []

    if len(password) < max(min_length, 1):
        violations.append("min_length")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        violations.append("max_length")
    if not _UPPERCASE_RE.search(password):
        violations.append("uppercase")
    if not _LOWERCASE_RE.search(password):
        violations.append("lowercase")
    if not _NUMBER_RE.search(password):
        violations.append("number")
    if not _SPECIAL_RE.search(password):
        violations.append("special_char")

    lowered = password.lower()

    local_part = (email or "").strip().lower().split("@")[0]
    if len(local_part) >= 3 and local_part in lowered:
        violations.append("contains_email")

    name = (display_name or "").strip().lower()
    if len(name) >= 3 and name in lowered:
        violations.append("contains_name")

    if lowered in COMMON_WEAK_PASSWORDS:
        violations.append("denylist_common")

    return list(dict.fromkeys(violations))
