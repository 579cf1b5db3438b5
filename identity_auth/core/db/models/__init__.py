from identity_auth.core.db.models.auth_lock import AuthLock
from identity_auth.core.db.models.auth_log import AuthenticationLog
from identity_auth.core.db.models.base import BaseModel
from identity_auth.core.db.models.otp import OTPRequest
from identity_auth.core.db.models.partner_token import PartnerToken

__all__ = [
    "AuthLock",
    "AuthenticationLog",
    "BaseModel",
    "OTPRequest",
    "PartnerToken",
]
