"""
Summarify Backend — Account Routes
====================================

What:  First-authentication hook and profile lookup.
Who:   Called by the frontend right after the identity provider signs a user in.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response

from summarify.routes.deps import get_account_id
from summarify.schemas.accounts import AccountAuthRequest, AccountProfileResponse
from summarify.schemas.common import ErrorResponse
from summarify.services.account_service import account_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["Accounts"])


@router.post(
    "/auth",
    response_model=AccountProfileResponse,
    responses={
        200: {"description": "Existing account"},
        201: {"description": "Account created with the starting balance"},
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
    },
    summary="Create the account on first sign-in",
)
async def authenticate(
    response: Response,
    body: Optional[AccountAuthRequest] = None,
    account_id: str = Depends(get_account_id),
) -> AccountProfileResponse:
    """
    Idempotent: the first call creates the account and grants the starting
    credits, later calls just return the profile.
    """
    body = body or AccountAuthRequest()
    profile = await account_service.ensure_account(
        account_id,
        email=body.email,
        display_name=body.display_name,
    )
    if profile.created:
        response.status_code = 201
    return AccountProfileResponse.model_validate(profile)


@router.get(
    "/me",
    response_model=AccountProfileResponse,
    responses={
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        404: {"description": "Account not created yet", "model": ErrorResponse},
    },
    summary="Current account profile",
)
async def get_me(account_id: str = Depends(get_account_id)) -> AccountProfileResponse:
    profile = await account_service.get_profile(account_id)
    return AccountProfileResponse.model_validate(profile)
