from enum import Enum


class OTPType(str, Enum):
    """Delivery channel of a one-time password."""

    SMS = "sms"
    EMAIL = "email"


class TokenStatus(str, Enum):
    """Lifecycle status of a partner-specific user token (PSUT)."""

    ACTIVE = "active"
    EXPIRED = "expired"  # Past expires_at, detected lazily or by sweep
    REVOKED = "revoked"  # Terminal, user or admin action


class AuthType(str, Enum):
    """Authentication method recorded in locks and audit logs."""

    OTP = "otp"
    DEMOGRAPHIC = "demographic"
    BIOMETRIC = "biometric"
    EKYC = "ekyc"


class BiometricModality(str, Enum):
    """Biometric modality; biometric locks are scoped per modality."""

    FINGERPRINT = "fingerprint"
    IRIS = "iris"
    FACE = "face"


class AuthStatus(str, Enum):
    """Outcome of an authentication attempt."""

    SUCCESS = "success"
    FAILED = "failed"


class PartnerStatus(str, Enum):
    """Status of a relying partner as reported by the partner registry."""

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class TokenInvalidReason(str, Enum):
    """Why a PSUT failed validation."""

    NOT_FOUND = "not_found"
    WRONG_STATUS = "wrong_status"
    EXPIRED = "expired"


# Auth types that can carry a lock; e-KYC is gated by partner status instead.
LOCKABLE_AUTH_TYPES = frozenset(
    {AuthType.OTP, AuthType.DEMOGRAPHIC, AuthType.BIOMETRIC}
)
