from typing import Literal

from pydantic import BaseModel, EmailStr, Field


Role = Literal["owner", "adopter"]


class SignUpIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=200)
    name: str = Field(min_length=2, max_length=200)
    role: Role
    location: str = Field(min_length=2, max_length=200)
    phone: str | None = Field(default=None, max_length=40)


class SignInIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=200)


class MeOut(BaseModel):
    user_id: str
    email: str
    display_name: str
    role: Role
    location: str
    phone: str | None


class SessionOut(BaseModel):
    session_token: str
    profile: MeOut
