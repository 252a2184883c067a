from typing import Any
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from authgate.core.modules.principal.models import PrincipalAdminView, Role
from authgate.web.deps import AppDep, AuthTokenDep, ClientDep
from authgate.web.openapi import ErrorResponse

router = APIRouter(tags=["principals"])

MANAGE_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    403: {"model": ErrorResponse, "description": "Account admin privileges required"},
    404: {"model": ErrorResponse, "description": "Principal not found"},
}


class CreatePrincipalRequest(BaseModel):
    """Request to create a new principal."""

    email: str = Field(..., min_length=1, max_length=320, description="Login email")
    password: str = Field(..., min_length=1, description="Initial password")
    role: Role = Field(..., description="Role")


@router.get(
    "/principals",
    summary="List principals",
    description="Get all principals. Only accessible by admins and company admins.",
    operation_id="listPrincipals",
    responses={
        200: {"description": "List of all principals"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Account admin privileges required"},
    },
)
async def list_principals(app: AppDep, auth_token: AuthTokenDep) -> list[PrincipalAdminView]:
    return await app.list_principals(auth_token)


@router.post(
    "/principals",
    summary="Create principal",
    description="Create a new principal. Only admins may create other admins.",
    operation_id="createPrincipal",
    responses={
        201: {"description": "Principal created successfully"},
        400: {"model": ErrorResponse, "description": "Invalid email, weak password or duplicate email"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Account admin privileges required"},
        429: {"model": ErrorResponse, "description": "Too many principals created"},
    },
    status_code=201,
)
async def create_principal(
    create_data: CreatePrincipalRequest, app: AppDep, auth_token: AuthTokenDep, client: ClientDep
) -> PrincipalAdminView:
    return await app.create_principal(auth_token, create_data.email, create_data.password, create_data.role, client)


@router.post(
    "/principals/{principal_id}/deactivate",
    summary="Deactivate principal",
    description="Disable a principal and end all of its sessions. You cannot deactivate yourself.",
    operation_id="deactivatePrincipal",
    responses={400: {"model": ErrorResponse, "description": "Cannot deactivate yourself"}, **MANAGE_RESPONSES},
)
async def deactivate_principal(
    principal_id: UUID, app: AppDep, auth_token: AuthTokenDep, client: ClientDep
) -> PrincipalAdminView:
    return await app.deactivate_principal(auth_token, principal_id, client)


@router.post(
    "/principals/{principal_id}/activate",
    summary="Activate principal",
    description="Re-enable a deactivated principal.",
    operation_id="activatePrincipal",
    responses=MANAGE_RESPONSES,
)
async def activate_principal(
    principal_id: UUID, app: AppDep, auth_token: AuthTokenDep, client: ClientDep
) -> PrincipalAdminView:
    return await app.activate_principal(auth_token, principal_id, client)


@router.post(
    "/principals/{principal_id}/unlock",
    summary="Unlock principal",
    description="Clear the failed-login counter and any active lockout.",
    operation_id="unlockPrincipal",
    responses=MANAGE_RESPONSES,
)
async def unlock_principal(
    principal_id: UUID, app: AppDep, auth_token: AuthTokenDep, client: ClientDep
) -> PrincipalAdminView:
    return await app.unlock_principal(auth_token, principal_id, client)
