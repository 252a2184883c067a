from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from authgate.core.modules.principal.models import PrincipalView
from authgate.core.modules.session.models import SessionView
from authgate.web.deps import AppDep, AuthTokenDep, ClientDep, OptionalAuthTokenDep
from authgate.web.openapi import ErrorResponse

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    """Authentication request."""

    email: str = Field(..., min_length=1, max_length=320, description="Login email")
    password: str = Field(..., min_length=1, max_length=1024, description="Password for authentication")


class LoginResponse(SessionView):
    """Authentication response."""

    principal: PrincipalView = Field(..., description="Authenticated principal")


class RevokedSessionsResponse(BaseModel):
    revoked: int = Field(..., description="Number of sessions ended")


@router.post(
    "/auth/login",
    summary="Authenticate principal",
    description="Authenticate with email and password to receive a session token. "
    "The token is also set as an HTTP-only cookie.",
    operation_id="login",
    responses={
        200: {"description": "Successfully authenticated"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        429: {"model": ErrorResponse, "description": "Too many attempts or account locked"},
        503: {"model": ErrorResponse, "description": "Service temporarily unavailable"},
    },
)
async def login(login_data: LoginRequest, app: AppDep, client: ClientDep, response: Response) -> LoginResponse:
    """Authenticate principal and create session."""

    result = await app.login(login_data.email, login_data.password, client)

    # Set cookie for browser-based clients
    response.set_cookie(
        key=app.config.session_cookie_name,
        value=result.session.token,
        httponly=True,
        samesite="strict",
        secure=app.config.session_cookie_secure,
        max_age=app.config.session_ttl_seconds,
    )

    return LoginResponse(
        token=result.session.token,
        expires_at=result.session.expires_at,
        principal=PrincipalView.from_domain(result.principal),
    )


@router.post(
    "/auth/logout",
    summary="End session",
    description="Invalidate the current session and clear the session cookie. "
    "Succeeds even when the session has already ended.",
    operation_id="logout",
    status_code=204,
    responses={
        204: {"description": "Successfully logged out"},
        503: {"model": ErrorResponse, "description": "Service temporarily unavailable"},
    },
)
async def logout(app: AppDep, auth_token: OptionalAuthTokenDep, client: ClientDep, response: Response) -> None:
    await app.logout(auth_token, client)
    response.delete_cookie(
        app.config.session_cookie_name,
        httponly=True,
        samesite="strict",
        secure=app.config.session_cookie_secure,
    )


@router.post(
    "/auth/logout-all",
    summary="End all own sessions",
    description="Invalidate every session of the current principal, on every device.",
    operation_id="logoutAll",
    responses={
        200: {"description": "Sessions ended"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def logout_all(
    app: AppDep, auth_token: AuthTokenDep, client: ClientDep, response: Response
) -> RevokedSessionsResponse:
    revoked = await app.logout_everywhere(auth_token, client)
    response.delete_cookie(
        app.config.session_cookie_name,
        httponly=True,
        samesite="strict",
        secure=app.config.session_cookie_secure,
    )
    return RevokedSessionsResponse(revoked=revoked)
