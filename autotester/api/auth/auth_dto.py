from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, description="The username of the user.")
    email: EmailStr = Field(..., description="The email of the user.")
    password: str = Field(..., min_length=1, description="The password of the user.")


class LoginRequest(BaseModel):
    username: str = Field(..., description="The username of the user.")
    password: str = Field(..., description="The password of the user.")


class Token(BaseModel):
    access_token: str = Field(..., description="The access token for the user.")
    token_type: str = Field(
        ..., description="The type of the token (usually 'bearer')."
    )


class UsageResponse(BaseModel):
    usedToday: int = Field(..., description="Generation requests counted today.")
    dailyLimit: Optional[int] = Field(
        None, description="Daily cap; null when the subscription is unlimited."
    )


class MeResponse(BaseModel):
    id: str
    username: str
    isAdmin: bool
    subscriptionStatus: Optional[str] = None
    usage: UsageResponse
