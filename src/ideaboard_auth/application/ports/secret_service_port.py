"""Port for opaque secret generation and one-way digests."""

from __future__ import annotations

from typing import Protocol


class SecretServicePort(Protocol):
    """Opaque secret contract shared by refresh and verification tokens."""

    def generate_secret(self) -> str:
        """Return a new high-entropy opaque secret."""

    def hash_secret(self, secret: str) -> str:
        """Return the deterministic storage digest of one secret."""
