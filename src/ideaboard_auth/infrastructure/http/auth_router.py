"""FastAPI router for registration, session and email verification endpoints."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, Query, Request

from ideaboard_auth.application.dto.auth_models import (
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResendVerificationRequest,
    RevokeAllResponse,
    SessionResponse,
    UserSummary,
    WeakPasswordDetail,
)
from ideaboard_auth.application.ports.user_repository_port import UserRecord
from ideaboard_auth.application.services.auth_service import (
    AuthOutcome,
    AuthResult,
    AuthService,
    IssuedSession,
)
from ideaboard_auth.infrastructure.http.auth_guard import (
    AccessTokenGuard,
    InvalidAuthTokenError,
    MissingAuthTokenError,
)
from ideaboard_auth.infrastructure.http.client_info import resolve_client_ip, resolve_user_agent


_OUTCOME_ERRORS: dict[AuthOutcome, tuple[int, str]] = {
    AuthOutcome.DUPLICATE_EMAIL: (409, "email already registered"),
    AuthOutcome.INVALID_CREDENTIALS: (401, "invalid credentials"),
    AuthOutcome.EMAIL_NOT_VERIFIED: (403, "email not verified"),
    AuthOutcome.INVALID_TOKEN: (401, "invalid or expired refresh token"),
    AuthOutcome.VERIFICATION_FAILED: (400, "invalid or expired verification token"),
    AuthOutcome.RATE_LIMITED: (429, "verification email recently sent"),
    AuthOutcome.NOT_FOUND: (400, "unable to resend verification email"),
}


def build_auth_router(*, auth_service: AuthService, access_guard: AccessTokenGuard) -> APIRouter:
    """Build router exposing the `/auth` endpoints."""

    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/register", response_model=SessionResponse, status_code=201)
    async def register(payload: RegisterRequest, request: Request) -> SessionResponse:
        if payload.password != payload.confirm_password:
            raise HTTPException(status_code=400, detail="passwords do not match")

        try:
            result = await auth_service.register(
                display_name=payload.display_name,
                email=payload.email,
                password=payload.password,
                ip_address=resolve_client_ip(request),
                user_agent=resolve_user_agent(request),
            )
        except ValueError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error

        if result.outcome is AuthOutcome.WEAK_CREDENTIAL:
            raise HTTPException(
                status_code=400,
                detail=WeakPasswordDetail(
                    message="password does not meet requirements",
                    violations=list(result.violations),
                ).model_dump(),
            )
        return _session_response(_require_success(result))

    @router.post("/login", response_model=SessionResponse)
    async def login(payload: LoginRequest, request: Request) -> SessionResponse:
        result = await auth_service.login(
            email=payload.email,
            password=payload.password,
            ip_address=resolve_client_ip(request),
            user_agent=resolve_user_agent(request),
        )
        return _session_response(_require_success(result))

    @router.post("/refresh", response_model=SessionResponse)
    async def refresh(payload: RefreshRequest, request: Request) -> SessionResponse:
        result = await auth_service.refresh(
            refresh_token=payload.refresh_token,
            ip_address=resolve_client_ip(request),
            user_agent=resolve_user_agent(request),
        )
        return _session_response(_require_success(result))

    @router.post("/logout", response_model=MessageResponse)
    async def logout(payload: LogoutRequest, request: Request) -> MessageResponse:
        result = await auth_service.logout(
            refresh_token=payload.refresh_token,
            ip_address=resolve_client_ip(request),
            user_agent=resolve_user_agent(request),
        )
        _require_success(result)
        return MessageResponse(message="logged out")

    @router.post("/revoke-all", response_model=RevokeAllResponse)
    async def revoke_all(
        request: Request,
        authorization: Annotated[str | None, Header()] = None,
    ) -> RevokeAllResponse:
        try:
            user = await access_guard.require_user(authorization_header=authorization)
        except (MissingAuthTokenError, InvalidAuthTokenError) as error:
            raise HTTPException(status_code=401, detail=str(error)) from error

        result = await auth_service.revoke_all(
            user_id=user.user_id,
            ip_address=resolve_client_ip(request),
            user_agent=resolve_user_agent(request),
        )
        if result.outcome is AuthOutcome.NOT_FOUND:
            raise HTTPException(status_code=404, detail="user not found")
        return RevokeAllResponse(revoked_count=result.revoked_count)

    @router.get("/verify-email", response_model=MessageResponse)
    async def verify_email(
        request: Request,
        user_id: Annotated[UUID, Query(alias="userId")],
        token: Annotated[str, Query(min_length=1)],
    ) -> MessageResponse:
        result = await auth_service.verify_email(
            user_id=user_id,
            token=token,
            ip_address=resolve_client_ip(request),
            user_agent=resolve_user_agent(request),
        )
        _require_success(result)
        return MessageResponse(message="email verified")

    @router.post("/resend-verification", response_model=MessageResponse)
    async def resend_verification(
        payload: ResendVerificationRequest,
        request: Request,
    ) -> MessageResponse:
        result = await auth_service.resend_verification(
            email=payload.email,
            ip_address=resolve_client_ip(request),
            user_agent=resolve_user_agent(request),
        )
        _require_success(result)
        return MessageResponse(message="verification email sent")

    return router


def _require_success(result: AuthResult) -> AuthResult:
    """Map non-success service outcomes into stable HTTP errors."""

    if result.outcome is AuthOutcome.SUCCESS:
        return result
    status_code, detail = _OUTCOME_ERRORS.get(result.outcome, (400, "request failed"))
    raise HTTPException(status_code=status_code, detail=detail)


def _session_response(result: AuthResult) -> SessionResponse:
    session = result.session
    if session is None:  # pragma: no cover - success outcomes always carry a session here.
        raise HTTPException(status_code=500, detail="session not issued")
    return _to_session_response(session)


def _to_session_response(session: IssuedSession) -> SessionResponse:
    return SessionResponse(
        access_token=session.access_token,
        access_token_expires_at=session.access_token_expires_at,
        refresh_token=session.refresh_token,
        refresh_token_expires_at=session.refresh_token_expires_at,
        user=_to_user_summary(session.user),
    )


def _to_user_summary(user: UserRecord) -> UserSummary:
    return UserSummary(
        id=user.user_id,
        display_name=user.display_name,
        email=user.email,
        email_verified=user.email_verified,
    )
