from identity_auth.core.schemas.auth import (
    AuthResult,
    DemographicRecord,
    EKYCResult,
    OTPDispatchResult,
    TokenValidation,
)

__all__ = [
    "AuthResult",
    "DemographicRecord",
    "EKYCResult",
    "OTPDispatchResult",
    "TokenValidation",
]
