from identity_auth.core.db.crud.auth_lock import AuthLockDB
from identity_auth.core.db.crud.auth_log import AuthenticationLogDB
from identity_auth.core.db.crud.base import BaseDB
from identity_auth.core.db.crud.otp import OTPRequestDB
from identity_auth.core.db.crud.partner_token import PartnerTokenDB

# Default CRUD instances; services accept replacements through their constructors
otp_request_db = OTPRequestDB()
partner_token_db = PartnerTokenDB()
auth_lock_db = AuthLockDB()
auth_log_db = AuthenticationLogDB()

__all__ = [
    # Classes (for type hints and subclassing)
    "AuthLockDB",
    "AuthenticationLogDB",
    "BaseDB",
    "OTPRequestDB",
    "PartnerTokenDB",
    # Default instances
    "auth_lock_db",
    "auth_log_db",
    "otp_request_db",
    "partner_token_db",
]
