"""Verification link rendering for email delivery."""

from __future__ import annotations

from urllib.parse import quote, urlencode
from uuid import UUID


def build_verification_url(*, base_url: str, user_id: UUID, secret: str) -> str:
    """Render `{base_url}/verify-email?userId=...&token=...` with an encoded secret."""

    query = urlencode({"userId": str(user_id), "token": secret}, quote_via=quote)
    return f"{base_url.rstrip('/')}/verify-email?{query}"
