"""Signed JWT access token codec built on PyJWT."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import jwt

from ideaboard_auth.application.ports.access_token_codec_port import (
    AccessTokenClaims,
    AccessTokenCodecPort,
    InvalidAccessTokenError,
    IssuedAccessToken,
)
from ideaboard_auth.application.ports.user_repository_port import UserRecord

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS512"
MIN_SIGNING_KEY_LENGTH = 32
DEFAULT_ACCESS_TOKEN_TTL = timedelta(minutes=15)
_REQUIRED_CLAIMS = ["sub", "jti", "iss", "aud", "iat", "exp"]


class JwtAccessTokenCodec(AccessTokenCodecPort):
    """Issue and verify HS512 access tokens carrying principal identity claims.

    Expiry is checked against the injected clock rather than PyJWT's own, so
    issuance and verification always agree on what "now" means.
    """

    def __init__(
        self,
        *,
        signing_key: str,
        issuer: str,
        audience: str,
        ttl: timedelta = DEFAULT_ACCESS_TOKEN_TTL,
        now: Callable[[], datetime] | None = None,
        token_id_factory: Callable[[], str] | None = None,
    ) -> None:
        if len(signing_key.encode("utf-8")) < MIN_SIGNING_KEY_LENGTH:
            raise ValueError(
                f"signing key must be at least {MIN_SIGNING_KEY_LENGTH} bytes long"
            )
        self._signing_key = signing_key
        self._issuer = issuer
        self._audience = audience
        self._ttl = ttl
        self._now = now or (lambda: datetime.now(tz=UTC))
        self._token_id_factory = token_id_factory or (lambda: str(uuid4()))

    def issue(self, user: UserRecord) -> IssuedAccessToken:
        issued_at = int(self._now().timestamp())
        expires_at = issued_at + int(self._ttl.total_seconds())
        token_id = self._token_id_factory()
        claims = {
            "sub": str(user.user_id),
            "email": user.email,
            "name": user.display_name,
            "jti": token_id,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(claims, self._signing_key, algorithm=JWT_ALGORITHM)
        return IssuedAccessToken(
            token=token,
            token_id=token_id,
            expires_at=datetime.fromtimestamp(expires_at, tz=UTC),
        )

    def parse_token_id(self, token: str) -> str | None:
        """Return `jti` of a correctly signed token, ignoring expiry."""

        try:
            claims = self._verified_claims(token)
        except jwt.PyJWTError:
            return None
        token_id = claims.get("jti")
        return token_id if isinstance(token_id, str) and token_id else None

    def decode(self, token: str) -> AccessTokenClaims:
        try:
            claims = self._verified_claims(token)
        except jwt.PyJWTError as error:
            logger.info("access_token_rejected reason=%s", type(error).__name__)
            raise InvalidAccessTokenError("invalid access token") from error

        expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=UTC)
        if self._now() >= expires_at:
            raise InvalidAccessTokenError("access token expired")

        return AccessTokenClaims(
            user_id=str(claims["sub"]),
            email=str(claims.get("email", "")),
            display_name=str(claims.get("name", "")),
            token_id=str(claims["jti"]),
            expires_at=expires_at,
        )

    def _verified_claims(self, token: str) -> dict[str, Any]:
        return jwt.decode(
            token,
            self._signing_key,
            algorithms=[JWT_ALGORITHM],
            audience=self._audience,
            issuer=self._issuer,
            options={
                "require": _REQUIRED_CLAIMS,
                "verify_exp": False,
                "verify_iat": False,
            },
        )
