from pydantic import BaseModel, EmailStr, Field, field_validator

from linkauth.schemas.users import UserResponse


class MagicLinkRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class MagicLinkVerifyRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class MessageResponse(BaseModel):
    message: str


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in_seconds: int
    refresh_expires_in_seconds: int
    user: UserResponse
