"""
Authentication schemas for orchestrator inputs and results.

- Demographic records (claimed and on-file)
- Authentication results returned for every method
- e-KYC results carrying the encrypted payload and partner token
- PSUT validation outcomes
- OTP dispatch acknowledgements
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from identity_auth.core.enums import AuthType, TokenInvalidReason, TokenStatus


class DemographicRecord(BaseModel):
    """Demographic data used for fuzzy matching.

    ``phone`` and ``email`` are optional on both the claimed and on-file side.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "first_name": "Jane",
                "last_name": "Doe",
                "date_of_birth": "1990-01-01",
                "phone": "+254712345678",
                "email": "jane.doe@example.com",
            }
        },
    )

    first_name: str = ""
    last_name: str = ""
    date_of_birth: str | None = None
    phone: str | None = None
    email: str | None = None

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _normalize_dob(cls, value: Any) -> Any:
        # datetime is a date subclass; keep only the calendar date
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AuthResult(BaseModel):
    """Outcome of a single authentication attempt.

    Failures (wrong code, low score, locked method) are values, not exceptions.
    """

    success: bool
    auth_type: AuthType
    message: str
    reason: str | None = None
    match_score: float | None = None
    locked: bool = False


class EKYCResult(BaseModel):
    """Successful e-KYC release: encrypted payload plus the partner's PSUT."""

    success: bool = True
    ekyc_data: Any
    token: str
    message: str = "e-KYC authentication successful"


class TokenValidation(BaseModel):
    """Result of validating a PSUT presented by a partner.

    ``user_id`` is only populated when the token is valid.
    """

    valid: bool
    user_id: str | None = None
    reason: TokenInvalidReason | None = None
    status: TokenStatus | None = None

    @property
    def message(self) -> str:
        if self.valid:
            return "Token is valid"
        if self.reason == TokenInvalidReason.WRONG_STATUS and self.status:
            return f"Token is {self.status.value}"
        if self.reason == TokenInvalidReason.EXPIRED:
            return "Token expired"
        return "Token not found"


class OTPDispatchResult(BaseModel):
    """Acknowledgement that an OTP was generated and handed to the notifier."""

    success: bool
    message: str
    expires_in: int | None = None
    locked: bool = False


__all__ = [
    "AuthResult",
    "DemographicRecord",
    "EKYCResult",
    "OTPDispatchResult",
    "TokenValidation",
]
