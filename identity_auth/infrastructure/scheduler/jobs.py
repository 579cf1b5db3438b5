from identity_auth.core.config import scheduler_logger
from identity_auth.core.services.otp import OTPManager
from identity_auth.core.services.tokens import TokenIssuer


async def cleanup_expired_otps(otp_manager: OTPManager) -> int:
    """
    Periodic task to hard-delete OTP requests whose expiry has passed.

    Verified, superseded and unused codes are all removed once expired.

    Args:
        otp_manager (OTPManager): Manager to run the cleanup with, supplied
            by the scheduler setup.

    Returns:
        int: The number of rows removed.
    """
    scheduler_logger.info("Starting cleanup of expired OTP requests")
    removed = await otp_manager.cleanup()
    scheduler_logger.info(
        f"Completed cleanup of expired OTP requests. Deleted {removed} record(s)."
    )
    return removed


async def expire_partner_tokens(token_issuer: TokenIssuer) -> int:
    """
    Periodic task to flip active partner tokens past their expiry to expired.

    Validation already expires tokens lazily; this sweep keeps the stored
    status accurate for tokens nobody presents.
    """
    scheduler_logger.info("Starting expiration of overdue partner tokens")
    expired = await token_issuer.sweep_expired()
    scheduler_logger.info(
        f"Completed expiration of partner tokens. Expired {expired} record(s)."
    )
    return expired
