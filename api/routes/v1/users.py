"""
api/routes/v1/users.py -- Profile endpoints for the authenticated account.

Routes:
  GET   /api/v1/users/me        -- public profile of the caller
  PATCH /api/v1/users/username  -- change the caller's username
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AccountResponse, ChangeUsernameRequest, DataResponse
from auth.dependencies import get_current_account, get_services
from auth.models import Account

router = APIRouter()


@router.get("/users/me", response_model=AccountResponse)
def read_me(account: Account = Depends(get_current_account)) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        email=account.email,
        username=account.username,
        role=account.role.value,
        avatar_url=account.avatar_url,
        is_activated=account.is_activated,
        created_at=account.created_at or "",
    )


@router.patch("/users/username", response_model=DataResponse)
def change_username(
    request: Request,
    body: ChangeUsernameRequest,
    account: Account = Depends(get_current_account),
) -> DataResponse:
    """409 when the name is taken, including by the caller."""
    return DataResponse(data=get_services(request).accounts.change_username(account.id, body.new_username))
