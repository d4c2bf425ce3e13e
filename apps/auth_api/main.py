"""auth-api entrypoint and HTTP route wiring."""

from __future__ import annotations

import logging
from datetime import timedelta

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideaboard_auth.application.ports.access_token_codec_port import AccessTokenCodecPort
from ideaboard_auth.application.ports.refresh_token_repository_port import (
    SessionStoreUnavailableError,
)
from ideaboard_auth.application.ports.verification_notifier_port import VerificationNotifierPort
from ideaboard_auth.application.services.auth_service import AuthService
from ideaboard_auth.config.settings import Settings, load_settings
from ideaboard_auth.infrastructure.db.auth_event_repository import SqlAlchemyAuthEventRepository
from ideaboard_auth.infrastructure.db.email_verification_token_repository import (
    SqlAlchemyEmailVerificationTokenRepository,
)
from ideaboard_auth.infrastructure.db.refresh_token_repository import (
    SqlAlchemyRefreshTokenRepository,
)
from ideaboard_auth.infrastructure.db.session import create_session_factory
from ideaboard_auth.infrastructure.db.user_repository import SqlAlchemyUserRepository
from ideaboard_auth.infrastructure.email.logging_notifier import LoggingVerificationNotifier
from ideaboard_auth.infrastructure.email.smtp_notifier import SmtpVerificationNotifier
from ideaboard_auth.infrastructure.http.auth_guard import AccessTokenGuard
from ideaboard_auth.infrastructure.http.auth_router import build_auth_router
from ideaboard_auth.infrastructure.logging import configure_logging
from ideaboard_auth.infrastructure.security.access_token_codec import JwtAccessTokenCodec
from ideaboard_auth.infrastructure.security.password_hasher import BcryptPasswordHasher
from ideaboard_auth.infrastructure.security.secret_service import OpaqueSecretService

AUTH_API_HOST = "0.0.0.0"
AUTH_API_PORT = 8000
logger = logging.getLogger(__name__)


def build_access_token_codec(settings: Settings) -> JwtAccessTokenCodec:
    """Build JWT codec from signing settings."""

    return JwtAccessTokenCodec(
        signing_key=settings.jwt_signing_key,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        ttl=timedelta(minutes=settings.access_token_ttl_minutes),
    )


def build_notifier(settings: Settings) -> VerificationNotifierPort:
    """Build SMTP notifier when a relay is configured, else the logging notifier."""

    if settings.smtp_host is None:
        logger.warning("smtp_not_configured verification links will be logged")
        return LoggingVerificationNotifier()

    from_address = settings.mail_from or settings.smtp_username
    if from_address is None:
        raise ValueError("MAIL_FROM or SMTP_USERNAME is required when SMTP_HOST is set")
    return SmtpVerificationNotifier(
        host=settings.smtp_host,
        port=settings.smtp_port,
        from_address=from_address,
        from_name=settings.mail_from_name,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )


def build_auth_service(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    access_tokens: AccessTokenCodecPort,
    notifier: VerificationNotifierPort,
) -> AuthService:
    """Build auth service with SQLAlchemy-backed dependencies."""

    return AuthService(
        users=SqlAlchemyUserRepository(session_factory),
        refresh_tokens=SqlAlchemyRefreshTokenRepository(session_factory),
        verification_tokens=SqlAlchemyEmailVerificationTokenRepository(session_factory),
        auth_events=SqlAlchemyAuthEventRepository(session_factory),
        password_hasher=BcryptPasswordHasher(),
        access_tokens=access_tokens,
        secret_service=OpaqueSecretService(),
        notifier=notifier,
        verification_base_url=f"{str(settings.public_base_url).rstrip('/')}/auth",
        refresh_token_ttl=timedelta(days=settings.refresh_token_ttl_days),
        verification_token_ttl=timedelta(hours=settings.email_verification_ttl_hours),
        resend_cooldown=timedelta(minutes=settings.verification_resend_cooldown_minutes),
        password_min_length=settings.password_min_length,
    )


def create_app(
    *,
    settings: Settings | None = None,
    auth_service: AuthService | None = None,
    access_tokens: AccessTokenCodecPort | None = None,
    notifier: VerificationNotifierPort | None = None,
) -> FastAPI:
    """Create FastAPI app exposing the auth endpoints."""

    if settings is None:
        settings = load_settings()
    configure_logging(level=settings.log_level)

    if access_tokens is None:
        access_tokens = build_access_token_codec(settings)
    if notifier is None:
        notifier = build_notifier(settings)
    session_factory = create_session_factory(settings.database_url)
    if auth_service is None:
        auth_service = build_auth_service(
            settings,
            session_factory=session_factory,
            access_tokens=access_tokens,
            notifier=notifier,
        )

    access_guard = AccessTokenGuard(
        access_tokens=access_tokens,
        user_repository=SqlAlchemyUserRepository(session_factory),
    )

    app = FastAPI(title="IdeaBoard Auth")
    app.include_router(build_auth_router(auth_service=auth_service, access_guard=access_guard))

    @app.exception_handler(SessionStoreUnavailableError)
    async def session_store_unavailable(
        request: Request,
        error: SessionStoreUnavailableError,
    ) -> JSONResponse:
        logger.error("session_store_unavailable path=%s error=%s", request.url.path, error)
        return JSONResponse(
            status_code=503,
            content={"detail": "session store unavailable, retry"},
        )

    return app


def run_asgi_server(*, host: str = AUTH_API_HOST, port: int = AUTH_API_PORT) -> None:
    """Run auth-api as a long-lived ASGI process using application factory mode."""

    uvicorn.run(
        "apps.auth_api.main:create_app",
        host=host,
        port=port,
        factory=True,
    )


def main() -> None:
    """Run auth-api runtime process."""

    run_asgi_server()


if __name__ == "__main__":
    main()
