from identity_auth.core.services.authentication import AuthenticationOrchestrator
from identity_auth.core.services.locks import AuthLockService
from identity_auth.core.services.matcher import MatchScore, score
from identity_auth.core.services.otp import OTPManager
from identity_auth.core.services.tokens import TokenIssuer

__all__ = [
    "AuthLockService",
    "AuthenticationOrchestrator",
    "MatchScore",
    "OTPManager",
    "TokenIssuer",
    "score",
]
