from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


GENERIC_LOGIN_MESSAGE = "If this is a registered admin email, you will receive a login link shortly."


class LoginRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _email_lower(cls, value: str) -> str:
        return value.strip().lower()


class PasswordLoginRequest(BaseModel):
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    success: bool = True
    message: str = GENERIC_LOGIN_MESSAGE


class AdminStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_admin: bool
    email: str | None = None
