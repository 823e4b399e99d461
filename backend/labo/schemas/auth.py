from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: str


class LoginRequest(BaseModel):
    username: EmailStr
    password: str


class RegisterRequest(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    phone_number: str | None = None
    # Administrators are provisioned out of band, never self-registered.
    role: Literal["factory", "worker"] = "factory"


class RefreshRequest(BaseModel):
    refresh_token: str
