"""
Pydantic schemas for registration, login, MFA and user management.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from maker_checker.models.enums import UserRole


# --- Registration ---

class RegistrationStart(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=128)


class RegistrationResend(BaseModel):
    email: str = Field(min_length=3, max_length=255)


class RegistrationVerify(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    code: str = Field(min_length=1, max_length=10)


class ChallengeSentResponse(BaseModel):
    message: str
    expires_in: int


# --- Login and MFA ---

class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    user_id: int
    mfa_required: bool
    session_granted: bool


class MFALoginVerify(BaseModel):
    user_id: int
    code: str = Field(min_length=1, max_length=10)


class MFACode(BaseModel):
    code: str = Field(min_length=1, max_length=10)


class MFAStatusResponse(BaseModel):
    mfa_enabled: bool


# --- Users ---

class PrivilegedUserCreate(BaseModel):
    """Checker or admin account created by a superadmin."""
    email: str = Field(min_length=3, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole


class UserResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    mfa_enabled: bool
    email_verified: bool
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserMutationResponse(BaseModel):
    user: UserResponse
    warnings: list[str] = []


class UserListResponse(BaseModel):
    data: list[UserResponse]
    total: int
    page: int
    limit: int
    has_more: bool


# --- Password ---

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class MessageResponse(BaseModel):
    message: str
    warnings: list[str] = []
