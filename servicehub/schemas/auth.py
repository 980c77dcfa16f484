import re
import uuid
from datetime import date, datetime
from typing import List, Optional, Literal

from pydantic import EmailStr, Field, field_validator

from .common import CamelModel


MOBILE_RE = re.compile(r"^(\+94|0)[0-9]{9}$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")


def normalize_mobile(mobile: str) -> str:
    """Local 0XXXXXXXXX numbers become +94XXXXXXXXX."""
    clean = re.sub(r"[\s\-\(\)]", "", mobile)
    if clean.startswith("0"):
        clean = "+94" + clean[1:]
    if not clean.startswith("+94"):
        clean = "+94" + clean
    return clean


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    mobile: str
    role: Literal["house_owner", "technician"] = "house_owner"

    @field_validator("username")
    @classmethod
    def username_chars(cls, v: str) -> str:
        if not USERNAME_RE.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("mobile")
    @classmethod
    def valid_mobile(cls, v: str) -> str:
        cleaned = re.sub(r"[\s\-\(\)]", "", v or "")
        if not MOBILE_RE.match(cleaned):
            raise ValueError("Please provide a valid Sri Lankan mobile number (+94XXXXXXXXX or 0XXXXXXXXX)")
        return normalize_mobile(cleaned)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class VerificationCodeRequest(CamelModel):
    verification_code: str = Field(min_length=6, max_length=6)


class EmailRequest(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class ResetCodeRequest(EmailRequest):
    code: str = Field(min_length=6, max_length=6)


class ResetPasswordRequest(ResetCodeRequest):
    password: str = Field(min_length=6)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


class AuthUser(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    mobile: Optional[str] = None
    role: str
    is_email_verified: bool = False
    is_mobile_verified: bool = False


class UserProfile(AuthUser):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    bio: Optional[str] = None
    specialties: Optional[List[str]] = None
    profile_picture: Optional[str] = None
    rating: Optional[float] = None
    is_google_user: bool = False
    is_active: bool = True
    addresses: Optional[list] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenResponse(CamelModel):
    success: bool = True
    message: str
    token: str
    user: AuthUser
