from typing import Annotated, cast

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authgate.app import App
from authgate.core.modules.access.models import ClientInfo
from authgate.core.modules.session.models import AuthToken
from authgate.errors import AuthenticationError

# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)


async def get_app(request: Request) -> App:
    return cast(App, request.app.state.app)


async def get_optional_auth_token(
    request: Request,
    app: Annotated[App, Depends(get_app)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> AuthToken | None:
    """Get auth token from Authorization Bearer header or session cookie, if any.

    The token is only extracted here; App validates it on every call.
    """

    # Check Bearer token first (preferred)
    if credentials and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return AuthToken(credentials.credentials)

    # Fallback to cookie
    token_cookie = request.cookies.get(app.config.session_cookie_name)
    if token_cookie:
        return AuthToken(token_cookie)

    return None


async def get_auth_token(auth_token: Annotated[AuthToken | None, Depends(get_optional_auth_token)]) -> AuthToken:
    if auth_token is None:
        raise AuthenticationError
    return auth_token


def client_ip(request: Request, trusted_proxy_count: int) -> str | None:
    """Client address as seen by the outermost trusted proxy.

    Each proxy appends the address it received the request from to
    X-Forwarded-For, so only the last `trusted_proxy_count` hops are
    trustworthy; anything before them is whatever the client sent. With no
    trusted proxies the headers are ignored and the socket peer is used.
    """
    if trusted_proxy_count > 0:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
            if hops:
                return hops[max(len(hops) - trusted_proxy_count, 0)]
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if request.client:
        return request.client.host
    return None


async def get_client_info(request: Request, app: Annotated[App, Depends(get_app)]) -> ClientInfo:
    return ClientInfo(
        ip_address=client_ip(request, app.config.trusted_proxy_count),
        user_agent=request.headers.get("user-agent"),
    )


# Type aliases for dependencies
AppDep = Annotated[App, Depends(get_app)]
AuthTokenDep = Annotated[AuthToken, Depends(get_auth_token)]
OptionalAuthTokenDep = Annotated[AuthToken | None, Depends(get_optional_auth_token)]
ClientDep = Annotated[ClientInfo, Depends(get_client_info)]
