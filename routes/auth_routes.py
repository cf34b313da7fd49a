"""
Authentication routes.

POST /auth/signup                     — create a pending account, email a link
POST /auth/signin                     — password login (or verification prompt)
POST /auth/forgot                     — email a reset (or verification) link
POST /auth/resend/{account_id}        — re-send the pending link (?type=)
GET  /auth/verify/{token}             — consume a verification link
POST /auth/reset-password/{token}     — consume a reset link
GET  /auth/session/{identifier}       — pending-process status polling
GET  /auth/check-session/{identifier} — lightweight verification poll
GET  /auth/token-info/{token}         — describe a live action token
GET  /auth/refresh                    — rotate the refresh credential
GET  /auth/logout                     — revoke the refresh credential (204)
GET  /auth/validate                   — current signed-in account
GET  /auth/google, /auth/facebook     — start OAuth
GET  /auth/{provider}/callback        — finish OAuth, redirect to the frontend
GET  /auth/failed                     — OAuth failure landing

Cookies:
    authToken — session token for status polling (30 min)
    jwt       — refresh credential (7 days on login, 1 day after refresh/OAuth)
"""

from __future__ import annotations

from typing import Optional, Union
from urllib.parse import urlencode

import httpx
from authlib.integrations.base_client import OAuthError
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from config import AppSettings
from dependencies import (
    REFRESH_COOKIE,
    SESSION_COOKIE,
    get_action_token_service,
    get_auth_service,
    get_cooldown,
    get_current_account,
    get_oauth_service,
    get_session_service,
    get_settings,
    rate_limit,
)
from errors import AuthenticationError, NotFoundError
from infrastructure.oauth_clients import PROVIDER_STRATEGIES, get_oauth_redirect_url
from repositories.account_repository import ACTION_VERIFICATION
from schemas.dto.requests.auth import (
    ForgotRequest,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
)
from schemas.dto.responses.auth import (
    AccountResponse,
    ActionEmailResponse,
    RefreshResponse,
    SessionStatusResponse,
    SigninResponse,
    SignupResponse,
    TokenInfoResponse,
    ValidateResponse,
    VerificationRequiredResponse,
    VerificationStatusResponse,
    VerifyEmailResponse,
)
from schemas.dto.responses.common import MessageResponse
from schemas.models.account import AccountDoc
from services.action_token_service import ActionTokenService
from services.auth_service import (
    DASHBOARD_REDIRECT,
    AuthService,
    notifications_redirect,
)
from services.cooldown import SessionCooldown
from services.oauth_service import OAuthService
from services.session_service import SessionService
from shared.datetime_utils import to_epoch_ms
from shared.ip_utils import get_client_ip
from shared.logging import get_logger
from shared.validators import mask_email

log = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Cookies ──────────────────────────────────────────────────────────────────


def _set_session_cookie(response: Response, token: str, settings: AppSettings) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        max_age=settings.jwt.session_token_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )


def _set_refresh_cookie(
    response: Response, token: str, max_age: int, settings: AppSettings
) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )


def _clear_auth_cookies(response: Response, settings: AppSettings) -> None:
    for name in (SESSION_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite="strict",
        )


def _session_token_from(request: Request) -> Optional[str]:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def _action_sent_message(kind: str, email: str) -> str:
    what = "verification" if kind == ACTION_VERIFICATION else "password reset"
    return (
        f"A {what} link has been sent to {mask_email(email)}. "
        "Please also check your spam folder."
    )


# ── Signup / signin ──────────────────────────────────────────────────────────


@router.post(
    "/signup",
    response_model=SignupResponse,
    dependencies=[Depends(rate_limit("signup"))],
)
async def signup(
    body: SignupRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> SignupResponse:
    result = await auth.signup(body)
    _set_session_cookie(response, result.session_token, settings)
    return SignupResponse(
        message="Account created successfully. Please check your email for verification.",
        redirect_url=notifications_redirect(result.account.account_id),
    )


@router.post(
    "/signin",
    response_model=None,
    dependencies=[Depends(rate_limit("signin"))],
)
async def signin(
    body: SigninRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    cooldown: SessionCooldown = Depends(get_cooldown),
    settings: AppSettings = Depends(get_settings),
) -> Union[SigninResponse, VerificationRequiredResponse]:
    result = await auth.signin(
        body.email,
        body.password,
        cooldown=cooldown,
        client_ip=get_client_ip(request) or None,
    )
    account = result.account

    if result.verification_required:
        _set_session_cookie(response, result.verification.session_token, settings)
        return VerificationRequiredResponse(
            message=(
                f"A verification email has been sent to {mask_email(account.email)}. "
                "Please check your inbox."
            ),
            redirect_url=notifications_redirect(account.account_id),
        )

    _set_refresh_cookie(
        response,
        result.tokens.refresh_token,
        result.tokens.refresh_ttl_seconds,
        settings,
    )
    return SigninResponse(
        access_token=result.tokens.access_token,
        redirect_url=DASHBOARD_REDIRECT,
        role=account.role,
        account_id=account.account_id,
    )


# ── Action links ─────────────────────────────────────────────────────────────


@router.post(
    "/forgot",
    response_model=ActionEmailResponse,
    dependencies=[Depends(rate_limit("forgot"))],
)
async def forgot(
    body: ForgotRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    cooldown: SessionCooldown = Depends(get_cooldown),
    settings: AppSettings = Depends(get_settings),
) -> ActionEmailResponse:
    account, issued = await auth.forgot(body.email, cooldown)
    _set_session_cookie(response, issued.session_token, settings)
    return ActionEmailResponse(
        message=_action_sent_message(issued.kind, account.email),
        email_type=issued.kind,
        redirect_url=notifications_redirect(account.account_id),
    )


@router.post(
    "/resend/{account_id}",
    response_model=ActionEmailResponse,
    dependencies=[Depends(rate_limit("resend"))],
)
async def resend(
    account_id: str,
    request: Request,
    response: Response,
    email_type: Optional[str] = Query(default=None, alias="type"),
    auth: AuthService = Depends(get_auth_service),
    cooldown: SessionCooldown = Depends(get_cooldown),
    settings: AppSettings = Depends(get_settings),
) -> ActionEmailResponse:
    issued = await auth.resend(
        account_id, _session_token_from(request), cooldown, email_type
    )
    _set_session_cookie(response, issued.session_token, settings)
    what = "Verification" if issued.kind == ACTION_VERIFICATION else "Password reset"
    return ActionEmailResponse(
        message=f"{what} email sent again successfully.",
        email_type=issued.kind,
    )


@router.get("/verify/{token}", response_model=VerifyEmailResponse)
async def verify_email(
    token: str,
    action_tokens: ActionTokenService = Depends(get_action_token_service),
) -> VerifyEmailResponse:
    outcome = await action_tokens.consume_verification(token)
    if outcome.already_verified:
        return VerifyEmailResponse(
            message="Email address already verified.", already_verified=True
        )
    return VerifyEmailResponse(message="Email verified successfully.")


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    action_tokens: ActionTokenService = Depends(get_action_token_service),
) -> MessageResponse:
    await action_tokens.consume_reset(token, body.password, body.password_confirm)
    return MessageResponse(message="Password reset successfully.")


# ── Status polling ───────────────────────────────────────────────────────────


@router.get("/session/{identifier}", response_model=SessionStatusResponse)
async def session_status(
    identifier: str,
    request: Request,
    response: Response,
    action_tokens: ActionTokenService = Depends(get_action_token_service),
    cooldown: SessionCooldown = Depends(get_cooldown),
    settings: AppSettings = Depends(get_settings),
) -> SessionStatusResponse:
    status = await action_tokens.query_status(
        identifier, _session_token_from(request), cooldown
    )
    if status.session_token:
        _set_session_cookie(response, status.session_token, settings)
    return SessionStatusResponse(
        status=status.status,
        message=status.message,
        account_id=status.account_id,
        email=status.email,
        is_verified=status.is_verified,
        session_type=status.session_type,
        token_expires=status.expires_at,
        time=to_epoch_ms(status.issued_at),
        cooldown=status.cooldown,
    )


@router.get("/check-session/{identifier}", response_model=VerificationStatusResponse)
async def check_session(
    identifier: str,
    action_tokens: ActionTokenService = Depends(get_action_token_service),
) -> VerificationStatusResponse:
    status = await action_tokens.check_verification_status(identifier)
    return VerificationStatusResponse(
        is_verified=status.is_verified,
        process_type=status.process_type,
        mode=status.mode,
    )


@router.get("/token-info/{token}", response_model=TokenInfoResponse)
async def token_info(
    token: str,
    action_tokens: ActionTokenService = Depends(get_action_token_service),
) -> TokenInfoResponse:
    info = await action_tokens.token_info(token)
    return TokenInfoResponse(
        account_id=info.account_id,
        email=info.email,
        token_type=info.token_type,
        token_expires=info.expires_at,
        is_verified=info.is_verified,
    )


# ── Refresh credential ───────────────────────────────────────────────────────


@router.get("/refresh", response_model=RefreshResponse)
async def refresh(
    request: Request,
    response: Response,
    sessions: SessionService = Depends(get_session_service),
    settings: AppSettings = Depends(get_settings),
) -> RefreshResponse:
    replacement = await sessions.refresh(request.cookies.get(REFRESH_COOKIE))
    _set_refresh_cookie(
        response,
        replacement,
        settings.jwt.rotated_refresh_token_ttl_seconds,
        settings,
    )
    return RefreshResponse(access_token=replacement)


@router.get("/logout", status_code=204)
async def logout(
    request: Request,
    sessions: SessionService = Depends(get_session_service),
    settings: AppSettings = Depends(get_settings),
) -> Response:
    await sessions.logout(request.cookies.get(REFRESH_COOKIE))
    request.session.clear()
    response = Response(status_code=204)
    _clear_auth_cookies(response, settings)
    return response


@router.get("/validate", response_model=ValidateResponse)
async def validate(
    account: AccountDoc = Depends(get_current_account),
) -> ValidateResponse:
    return ValidateResponse(user=AccountResponse.from_doc(account))


# ── OAuth ────────────────────────────────────────────────────────────────────


def _oauth_client(request: Request, provider: str):
    client = (request.app.state.oauth_providers or {}).get(provider)
    if client is None:
        raise NotFoundError(f"{provider.capitalize()} sign-in is not configured.")
    return client


async def _start_oauth(request: Request, provider: str, settings: AppSettings):
    client = _oauth_client(request, provider)
    redirect_uri = get_oauth_redirect_url(provider, settings.oauth) or str(
        request.url_for(f"{provider}_callback")
    )
    return await client.authorize_redirect(request, redirect_uri)


async def _finish_oauth(
    request: Request,
    provider: str,
    oauth: OAuthService,
    settings: AppSettings,
) -> RedirectResponse:
    frontend = settings.frontend_url.rstrip("/")
    failed = RedirectResponse(f"{frontend}/auth/failed", status_code=302)
    client = _oauth_client(request, provider)

    try:
        token = await client.authorize_access_token(request)
        profile = await PROVIDER_STRATEGIES[provider].fetch_user_info(client, token)
    except (OAuthError, httpx.HTTPError) as e:
        log.warning(
            "oauth_callback_failed",
            provider=provider,
            error=str(e),
            error_type=type(e).__name__,
        )
        return failed

    try:
        result = await oauth.login_with_provider(
            provider, profile, client_ip=get_client_ip(request) or None
        )
    except AuthenticationError as e:
        log.warning("oauth_login_rejected", provider=provider, reason=e.message)
        return failed

    query = urlencode(
        {
            "token": result.tokens.access_token,
            "role": result.account.role,
            "redirectUrl": result.redirect_path,
        }
    )
    response = RedirectResponse(f"{frontend}/auth/{provider}?{query}", status_code=302)
    _set_refresh_cookie(
        response,
        result.tokens.refresh_token,
        result.tokens.refresh_ttl_seconds,
        settings,
    )
    log.info(
        "oauth_login_success",
        provider=provider,
        account_id=result.account.account_id,
        created=result.created,
    )
    return response


@router.get("/google")
async def google_login(
    request: Request, settings: AppSettings = Depends(get_settings)
):
    return await _start_oauth(request, "google", settings)


@router.get("/google/callback", name="google_callback")
async def google_callback(
    request: Request,
    oauth: OAuthService = Depends(get_oauth_service),
    settings: AppSettings = Depends(get_settings),
) -> RedirectResponse:
    return await _finish_oauth(request, "google", oauth, settings)


@router.get("/facebook")
async def facebook_login(
    request: Request, settings: AppSettings = Depends(get_settings)
):
    return await _start_oauth(request, "facebook", settings)


@router.get("/facebook/callback", name="facebook_callback")
async def facebook_callback(
    request: Request,
    oauth: OAuthService = Depends(get_oauth_service),
    settings: AppSettings = Depends(get_settings),
) -> RedirectResponse:
    return await _finish_oauth(request, "facebook", oauth, settings)


@router.get("/failed")
async def oauth_failed() -> JSONResponse:
    return JSONResponse(
        status_code=401, content={"error": "Login failed.", "code": "oauth_failed"}
    )
