from fastapi import APIRouter
from pydantic import BaseModel, Field

from authgate.core.modules.principal.models import PrincipalView
from authgate.web.deps import AppDep, AuthTokenDep, ClientDep
from authgate.web.openapi import ErrorResponse

router = APIRouter(tags=["profile"])


class ChangePasswordRequest(BaseModel):
    """Request to change the caller's password."""

    old_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., min_length=1, description="New password")


@router.get(
    "/profile",
    summary="Get current principal",
    description="Get the profile of the currently authenticated principal.",
    operation_id="getCurrentPrincipal",
    responses={
        200: {"description": "Current principal"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def get_profile(app: AppDep, auth_token: AuthTokenDep) -> PrincipalView:
    return await app.get_current_principal(auth_token)


@router.post(
    "/profile/change-password",
    summary="Change password",
    description="Change the password of the current principal. All of its sessions are ended; log in again afterwards.",
    operation_id="changePassword",
    status_code=204,
    responses={
        204: {"description": "Password changed successfully"},
        400: {"model": ErrorResponse, "description": "Invalid current password or weak new password"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
    },
)
async def change_password(
    request: ChangePasswordRequest, app: AppDep, auth_token: AuthTokenDep, client: ClientDep
) -> None:
    await app.change_password(auth_token, request.old_password, request.new_password, client)
