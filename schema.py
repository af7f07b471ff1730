import re
from enum import Enum
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, field_validator

PASSWORD_MIN_LENGTH = 8

# (pattern, message) pairs checked in order after the length rule
PASSWORD_RULES = [
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
    (re.compile(r"[@$!%*?&#]"), "Password must contain at least one special character"),
]


class RegisterStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    INVALID_DATA = "invalid_data"
    USER_EXISTS = "user_exists"


class LoginStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    INVALID_DATA = "invalid_data"
    USER_NOT_FOUND = "user_not_found"
    NOT_AUTHORIZED = "not_authorized"


class AuthForm(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        # Cognito receives the address exactly as typed; only the shape is checked
        try:
            validate_email(value, check_deliverability=False, globally_deliverable=False)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address: {e}") from e
        return value

    @field_validator("password")
    @classmethod
    def check_password_policy(cls, value: str) -> str:
        if len(value) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
        for pattern, message in PASSWORD_RULES:
            if not pattern.search(value):
                raise ValueError(message)
        return value


class RegisterActionState(BaseModel):
    status: RegisterStatus
    message: Optional[str] = None


class LoginActionState(BaseModel):
    status: LoginStatus
    message: Optional[str] = None
    chat_id: Optional[str] = None
    access_token: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
