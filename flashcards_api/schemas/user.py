import uuid
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field, StringConstraints, model_validator

Password = Annotated[str, StringConstraints(min_length=8, max_length=100)]
NormalizedEmail = Annotated[EmailStr, AfterValidator(lambda email: email.strip().lower())]


# --- Auth requests ---

class UserRegisterRequest(BaseModel):
    email: NormalizedEmail
    password: Password
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "UserRegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLoginRequest(BaseModel):
    email: NormalizedEmail
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PasswordResetRequestSchema(BaseModel):
    email: NormalizedEmail


class PasswordResetConfirmSchema(BaseModel):
    token: str = Field(min_length=1)
    new_password: Password
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "PasswordResetConfirmSchema":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


# --- User response ---

class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    is_active: bool
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}
