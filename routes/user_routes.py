"""
User profile routes.

PUT    /users/me              — update own first/last name
PUT    /users/me/password     — change own password
GET    /users                 — list user accounts (admin)
GET    /users/{account_id}    — show one user account (admin)
DELETE /users/{account_id}    — delete a user account and its notifications (admin)

Every route requires a signed-in account (bearer header or refresh cookie).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import get_current_account, get_user_service
from schemas.dto.requests.auth import UpdatePasswordRequest, UpdateProfileRequest
from schemas.dto.responses.auth import AccountResponse
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.users import UserListResponse, UserResponse
from schemas.models.account import AccountDoc
from services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/me", response_model=UserResponse)
async def update_profile(
    body: UpdateProfileRequest,
    account: AccountDoc = Depends(get_current_account),
    users: UserService = Depends(get_user_service),
) -> UserResponse:
    updated = await users.update_profile_info(
        account.account_id, body.first_name, body.last_name
    )
    return UserResponse(
        message="Profile updated successfully.",
        user=AccountResponse.from_doc(updated),
    )


@router.put("/me/password", response_model=MessageResponse)
async def update_password(
    body: UpdatePasswordRequest,
    account: AccountDoc = Depends(get_current_account),
    users: UserService = Depends(get_user_service),
) -> MessageResponse:
    await users.update_password(
        account.account_id,
        body.current_password,
        body.new_password,
        body.confirm_new_password,
    )
    return MessageResponse(message="Password updated successfully.")


@router.get("", response_model=UserListResponse)
async def list_users(
    account: AccountDoc = Depends(get_current_account),
    users: UserService = Depends(get_user_service),
) -> UserListResponse:
    accounts = await users.list_users(account)
    return UserListResponse(data=[AccountResponse.from_doc(a) for a in accounts])


@router.get("/{account_id}", response_model=UserResponse)
async def show_user(
    account_id: str,
    account: AccountDoc = Depends(get_current_account),
    users: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await users.get_user(account, account_id)
    return UserResponse(user=AccountResponse.from_doc(user))


@router.delete("/{account_id}", response_model=MessageResponse)
async def delete_user(
    account_id: str,
    account: AccountDoc = Depends(get_current_account),
    users: UserService = Depends(get_user_service),
) -> MessageResponse:
    await users.delete_user(account, account_id)
    return MessageResponse(message="User deleted successfully.")
