"""Plain-text and HTML bodies for verification emails."""

from __future__ import annotations

from html import escape

VERIFICATION_SUBJECT = "Confirm your email address"


def build_verification_text(*, display_name: str, verification_url: str) -> str:
    """Render plain-text verification body."""

    return (
        f"Hi {display_name},\n\n"
        "Please confirm your email address by opening the link below:\n\n"
        f"{verification_url}\n\n"
        "The link expires in 24 hours. If you did not create an account, ignore this email.\n"
    )


def build_verification_html(*, display_name: str, verification_url: str) -> str:
    """Render HTML verification body with escaped user-controlled values."""

    safe_name = escape(display_name)
    safe_url = escape(verification_url, quote=True)
    return (
        f"<p>Hi {safe_name},</p>"
        "<p>Please confirm your email address by clicking the link below:</p>"
        f'<p><a href="{safe_url}">Confirm email</a></p>'
        "<p>The link expires in 24 hours. If you did not create an account, "
        "ignore this email.</p>"
    )
