"""
API request and response models for the session-auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own
validation of emails, passwords and codes. Request fields here are loose
strings on purpose: a missing or malformed field must reach AuthService and
come back as invalid_credentials (400), not as a schema error (422).

JSON field names (requires2FA, loginAttemptId, 2FACode) follow the wire format
existing front-ends send; populate_by_name also accepts the snake_case names.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    password: str = ""
    requires_two_factor: bool = Field(default=False, alias="requires2FA")


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class TwoFactorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    login_attempt_id: str = Field(default="", alias="loginAttemptId")
    code: str = Field(default="", alias="2FACode")


class VerifyTokenRequest(BaseModel):
    token: str = ""


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class SessionIssuedResponse(BaseModel):
    """Login (or second factor) succeeded; the token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    message: str = "Logged in"
    token: str
    token_type: str = "bearer"
    expires_in: int


class TwoFactorRequiredResponse(BaseModel):
    """Password accepted, second factor pending. The code is sent out of band."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str = "2FA required"
    login_attempt_id: str = Field(alias="loginAttemptId")


class VerifyTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool = True
    email: str


class SessionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    store_backend: str
