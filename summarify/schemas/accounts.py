"""
Summarify Backend — Account Schemas
=====================================
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AccountAuthRequest(BaseModel):
    """
    Optional profile details sent with the first-authentication call.

    The identity itself comes from the X-Account-ID header.
    """
    email: Optional[str] = Field(default=None, max_length=320)
    display_name: Optional[str] = Field(default=None, max_length=255)


class AccountProfileResponse(BaseModel):
    account_id: str = Field(description="Stable identity from the identity provider")
    email: Optional[str] = None
    display_name: Optional[str] = None
    balance: int = Field(description="Current credit balance")
    created_at: datetime
    created: bool = Field(default=False, description="True when this call created the account")

    model_config = {"from_attributes": True}
