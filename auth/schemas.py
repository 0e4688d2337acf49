"""
Request/response models for the auth endpoints.
"""

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, examples=["Ed"])
    password: str = Field(..., min_length=1, examples=["WinryRockbell"])


class TokenResponse(BaseModel):
    token: str


class VerifyPasswordResponse(BaseModel):
    match: bool
