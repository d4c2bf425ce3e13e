"""Opaque secret generation and SHA-256 digests for refresh and verification tokens."""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable

from ideaboard_auth.application.ports.secret_service_port import SecretServicePort

SECRET_BYTES = 48


class OpaqueSecretService(SecretServicePort):
    """Generate URL-safe secrets and the hex digests stored in their place."""

    def __init__(self, *, secret_factory: Callable[[], str] | None = None) -> None:
        self._secret_factory = secret_factory or (lambda: secrets.token_urlsafe(SECRET_BYTES))

    def generate_secret(self) -> str:
        return self._secret_factory()

    def hash_secret(self, secret: str) -> str:
        return hashlib.sha256(secret.encode("utf-8")).hexdigest()
