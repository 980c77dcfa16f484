from datetime import date
from typing import List, Optional, Literal

from pydantic import EmailStr, Field, field_validator

from .auth import MOBILE_RE, USERNAME_RE, normalize_mobile
from .common import CamelModel


class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    mobile: Optional[str] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    specialties: Optional[List[str]] = None

    @field_validator("username")
    @classmethod
    def username_chars(cls, v):
        if v is not None and not USERNAME_RE.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower() if v else v

    @field_validator("mobile")
    @classmethod
    def valid_mobile(cls, v):
        if v is None:
            return None
        if not MOBILE_RE.match(v.replace(" ", "")):
            raise ValueError("Please provide a valid Sri Lankan mobile number")
        return normalize_mobile(v)


class AddressIn(CamelModel):
    type: Literal["home", "work", "other"] = "home"
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    zip_code: str = Field(min_length=1)
    country: Optional[str] = None
    is_default: bool = False
    instructions: Optional[str] = None

    @field_validator("state", "country", "instructions", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None
