"""
Utility functions shared by the authentication services.

- Cryptographically secure OTP generation
- HMAC-based OTP hashing for queryable secure storage
- Partner-specific user token (PSUT) construction
- Masking of contacts and secrets for log output
- Timeout wrapper mapping slow collaborators to infrastructure errors
- Unit-of-work wrapper mapping store failures to DatabaseException
- Coercion of raw channel and modality values into their enums
"""

import asyncio
from datetime import datetime
import hashlib
import hmac
import secrets
from enum import Enum
from typing import Any, Awaitable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from identity_auth.core.config import app_logger, database_logger, settings
from identity_auth.core.exceptions.types import (
    DatabaseException,
    InfrastructureTimeoutException,
    ValidationException,
)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


def generate_otp_code(length: int = 6) -> str:
    """
    Generate a numeric OTP code with no leading zero.

    The code is drawn uniformly from ``[10**(length-1), 10**length - 1]``
    using the ``secrets`` CSPRNG, i.e. 900,000 possible values for the
    default length of 6.

    Args:
        length: Number of digits. Default is 6.

    Returns:
        str: The OTP code.

    Examples:
        >>> code = generate_otp_code()
        >>> len(code), code.isdigit(), code[0] != "0"
        (6, True, True)
    """
    if length < 1:
        raise ValueError("OTP length must be positive")

    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(10**length - low))


def mask_otp(otp: str) -> str:
    """
    Mask an OTP code for logging purposes, showing only first and last digit.

    Examples:
        >>> mask_otp("123456")
        '1****6'
        >>> mask_otp("12")
        '12'
    """
    if len(otp) <= 2:
        return otp

    return f"{otp[0]}{'*' * (len(otp) - 2)}{otp[-1]}"


def mask_contact(contact: str | None) -> str:
    """
    Mask a phone number or email address for log output.

    Examples:
        >>> mask_contact("jane.doe@example.com")
        'j***@example.com'
        >>> mask_contact("+254712345678")
        '*********5678'
    """
    if not contact:
        return ""

    if "@" in contact:
        local, _, domain = contact.partition("@")
        return f"{local[:1]}***@{domain}"

    if len(contact) <= 4:
        return "*" * len(contact)

    return f"{'*' * (len(contact) - 4)}{contact[-4:]}"


def mask_token(token: str | None) -> str:
    """Show only the prefix and the last four characters of a token."""
    if not token:
        return ""
    prefix, _, _ = token.partition("_")
    return f"{prefix}_...{token[-4:]}"


def hmac_hash_otp(otp: str | None, secret: str | None) -> str:
    """
    Hash an OTP using HMAC-SHA256 for secure, queryable storage.

    Args:
        otp: The OTP code to hash. Cannot be None or empty.
        secret: The secret key for HMAC. Cannot be None or empty.

    Returns:
        str: The HMAC-SHA256 hash as a 64-character hexadecimal string.

    Raises:
        ValueError: If otp or secret is None or empty.
    """
    if not otp:
        raise ValueError("OTP cannot be None or empty")

    if not secret:
        raise ValueError("Secret cannot be None or empty")

    return hmac.new(
        secret.encode("utf-8"), otp.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def hmac_verify_otp(
    otp: str | None, hashed_otp: str | None, secret: str | None
) -> bool:
    """
    Verify an OTP against its HMAC-SHA256 hash using constant-time comparison.

    Returns False for any invalid input instead of raising, so a malformed
    submission is just a mismatch.
    """
    if not otp or not hashed_otp or not secret:
        return False

    computed_hash = hmac_hash_otp(otp, secret)
    return hmac.compare_digest(computed_hash, hashed_otp)


def generate_partner_token(
    user_id: str,
    partner_id: str,
    issued_at: datetime,
    prefix: str | None = None,
) -> str:
    """
    Build a partner-specific user token (PSUT).

    The token is ``<prefix>_<h>_<r>`` where ``h`` is the first 32 hex chars
    of SHA-256 over ``"user:partner:epoch_ms"`` and ``r`` is 16 random bytes
    in hex. The hash is one-way, so the binding can only be recovered
    through the store.

    Args:
        user_id: The resident's identifier.
        partner_id: The relying partner's identifier.
        issued_at: Issue timestamp, folded into the hash.
        prefix: Distinguishing prefix. Defaults to ``settings.PSUT_PREFIX``.

    Returns:
        str: The token string.
    """
    prefix = prefix or settings.PSUT_PREFIX
    epoch_ms = int(issued_at.timestamp() * 1000)
    digest = hashlib.sha256(
        f"{user_id}:{partner_id}:{epoch_ms}".encode("utf-8")
    ).hexdigest()
    return f"{prefix}_{digest[:32]}_{secrets.token_hex(16)}"


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str,
) -> T:
    """
    Await ``awaitable`` within ``timeout`` seconds.

    A timeout is an infrastructure failure, never a verification verdict.
    Side effects already committed by the awaited call are kept.

    Args:
        awaitable: The coroutine to run.
        timeout: Budget in seconds; None falls back to ``settings.IO_TIMEOUT_SECONDS``.
        operation: Human-readable operation name for the error message.

    Raises:
        InfrastructureTimeoutException: If the budget is exceeded.
    """
    budget = settings.IO_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=budget)
    except asyncio.TimeoutError as e:
        app_logger.error(f"{operation} timed out after {budget}s")
        raise InfrastructureTimeoutException(
            message=f"{operation} timed out after {budget} seconds",
            details={"operation": operation, "timeout": budget},
        ) from e


async def run_db_operation(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str,
) -> T:
    """
    Run a unit of work against the store within ``timeout`` seconds.

    The awaitable is expected to own its whole transaction, so a failure
    to connect, to execute or to commit on leaving ``begin()`` all surface
    here. Driver errors that SQLAlchemy does not wrap (asyncpg raises a
    plain ``OSError`` when the server is unreachable) are mapped as well.

    Raises:
        DatabaseException: If the store is unreachable or the work fails.
        InfrastructureTimeoutException: If the budget is exceeded.
    """
    try:
        return await with_timeout(awaitable, timeout, operation)
    except (SQLAlchemyError, OSError) as e:
        database_logger.error(f"{operation} failed: {str(e)}")
        raise DatabaseException(
            message=f"{operation} failed: store unavailable",
            details={"operation": operation},
        ) from e


def coerce_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """
    Convert a raw value (member or plain string) into ``enum_cls``.

    Examples:
        >>> from identity_auth.core.enums import OTPType
        >>> coerce_enum(OTPType, "sms", "otp_type")
        <OTPType.SMS: 'sms'>

    Raises:
        ValidationException: If the value is not a member of ``enum_cls``.
    """
    try:
        return enum_cls(value)
    except (ValueError, TypeError) as e:
        allowed = [member.value for member in enum_cls]
        raise ValidationException(
            f"Invalid {field} '{value}'. Expected one of: {', '.join(allowed)}",
            details={"field": field, "value": str(value), "allowed": allowed},
        ) from e
