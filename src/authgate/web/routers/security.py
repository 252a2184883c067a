from typing import Annotated

from fastapi import APIRouter, Query

from authgate.core.modules.audit.models import SecurityEventView
from authgate.web.deps import AppDep, AuthTokenDep
from authgate.web.openapi import ErrorResponse

router = APIRouter(tags=["security"])


@router.get(
    "/security/events",
    summary="Recent security events",
    description="Most recent security events first. Admins only.",
    operation_id="listSecurityEvents",
    responses={
        200: {"description": "Security events"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin privileges required"},
    },
)
async def list_security_events(
    app: AppDep, auth_token: AuthTokenDep, limit: Annotated[int, Query(ge=1, le=1000)] = 100
) -> list[SecurityEventView]:
    return await app.list_security_events(auth_token, limit)
