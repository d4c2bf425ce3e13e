"""Caller metadata extraction shared by auth endpoints."""

from __future__ import annotations

from fastapi import Request

UNKNOWN_CLIENT_IP = "unknown"


def resolve_client_ip(request: Request) -> str:
    """Return first `X-Forwarded-For` entry, else socket peer, else `unknown`."""

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_IP


def resolve_user_agent(request: Request) -> str | None:
    """Return the caller user agent header when present."""

    return request.headers.get("user-agent")
