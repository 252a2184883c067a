from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from authgate.web.deps import AppDep, AuthTokenDep, ClientDep
from authgate.web.openapi import ErrorResponse
from authgate.web.routers.auth import RevokedSessionsResponse

router = APIRouter(tags=["sessions"])


class PurgeResponse(BaseModel):
    sessions: int = Field(..., description="Expired sessions removed")
    rate_limit_records: int = Field(..., description="Idle rate-limit records removed")


@router.post(
    "/sessions/revoke-all",
    summary="End every session",
    description="Invalidate every session of every principal, including the caller's. Admins only.",
    operation_id="revokeAllSessions",
    responses={
        200: {"description": "Sessions ended"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin privileges required"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
    },
)
async def revoke_all_sessions(app: AppDep, auth_token: AuthTokenDep, client: ClientDep) -> RevokedSessionsResponse:
    return RevokedSessionsResponse(revoked=await app.revoke_all_sessions(auth_token, client))


@router.delete(
    "/sessions/principal/{principal_id}",
    summary="End a principal's sessions",
    description="Invalidate every session of one principal. Admins only.",
    operation_id="revokePrincipalSessions",
    responses={
        200: {"description": "Sessions ended"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin privileges required"},
        404: {"model": ErrorResponse, "description": "Principal not found"},
    },
)
async def revoke_principal_sessions(
    principal_id: UUID, app: AppDep, auth_token: AuthTokenDep, client: ClientDep
) -> RevokedSessionsResponse:
    return RevokedSessionsResponse(revoked=await app.revoke_principal_sessions(auth_token, principal_id, client))


@router.post(
    "/sessions/purge-expired",
    summary="Purge expired sessions",
    description="Remove expired sessions and idle rate-limit records. Admins only.",
    operation_id="purgeExpiredSessions",
    responses={
        200: {"description": "Purge counts"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin privileges required"},
    },
)
async def purge_expired(app: AppDep, auth_token: AuthTokenDep) -> PurgeResponse:
    return PurgeResponse(**await app.purge_expired(auth_token))
