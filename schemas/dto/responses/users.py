"""
Response DTOs for /users endpoints.

UserResponse     — PUT /users/me, GET /users/{account_id}
UserListResponse — GET /users
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from schemas.dto.responses.auth import AccountResponse

_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class UserResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    message: Optional[str] = None
    user: AccountResponse


class UserListResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    data: list[AccountResponse]
