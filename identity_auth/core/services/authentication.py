"""
Authentication Orchestrator for multi-factor identity authentication.

This module ties the authentication methods together:
- OTP send and verification
- Demographic fuzzy matching against the on-file record
- Biometric verification through the external verifier
- e-KYC release to an active partner, with a partner-specific token
- Audit history and token pass-throughs

Every lockable method checks the resident's lock first. A locked method
returns a failed AuthResult without touching OTP attempts, the notifier or
the verifiers, and without writing an audit row. Every executed attempt is
then written to the authentication log; a failure to write that row is
logged and never changes the result.

Example usage:
    from identity_auth.core.db import AsyncSessionLocal
    from identity_auth.core.services.authentication import (
        AuthenticationOrchestrator,
    )

    orchestrator = AuthenticationOrchestrator(
        resident_directory=directory,
        biometric_verifier=verifier,
        ekyc_service=ekyc,
        partner_registry=registry,
        session_factory=AsyncSessionLocal,
    )

    await orchestrator.send_otp("user-1", OTPType.SMS)
    result = await orchestrator.otp_authenticate("user-1", "482913", OTPType.SMS)
    if not result.success:
        print(result.reason)
"""

from typing import Any, Awaitable, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_auth.core.config import auth_logger, settings
from identity_auth.core.db.crud import AuthenticationLogDB, auth_log_db
from identity_auth.core.db.models import AuthenticationLog
from identity_auth.core.enums import AuthStatus, AuthType, BiometricModality, OTPType
from identity_auth.core.exceptions.types import (
    AppException,
    ExternalServiceException,
    InvalidPartnerException,
    ResidentNotFoundException,
    ValidationException,
)
from identity_auth.core.schemas.auth import (
    AuthResult,
    DemographicRecord,
    EKYCResult,
    OTPDispatchResult,
    TokenValidation,
)
from identity_auth.core.services import matcher
from identity_auth.core.services.locks import AuthLockService
from identity_auth.core.services.otp import OTPManager
from identity_auth.core.services.ports import (
    BiometricVerifier,
    EKYCDataService,
    PartnerRegistry,
    ResidentDirectory,
)
from identity_auth.core.services.tokens import TokenIssuer
from identity_auth.core.utils import (
    coerce_enum,
    mask_contact,
    run_db_operation,
    with_timeout,
)


__all__ = ["AuthenticationOrchestrator"]

T = TypeVar("T")

INVALID_OTP_REASON = "Invalid OTP"
BIOMETRIC_FAILED_REASON = "Biometric match failed"


class AuthenticationOrchestrator:
    """
    Runs each authentication method through lock check, execution and audit.

    Collaborators are injected. Anything a collaborator raises that is not an
    AppException is wrapped in ExternalServiceException; AppExceptions (for
    example a timeout) propagate unchanged.

    Attributes:
        otp_manager: OTP lifecycle.
        token_issuer: PSUT lifecycle.
        lock_service: Per-user authentication locks.
    """

    def __init__(
        self,
        resident_directory: ResidentDirectory,
        biometric_verifier: BiometricVerifier,
        ekyc_service: EKYCDataService,
        partner_registry: PartnerRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        otp_manager: OTPManager | None = None,
        token_issuer: TokenIssuer | None = None,
        lock_service: AuthLockService | None = None,
        log_db: AuthenticationLogDB = auth_log_db,
        match_threshold: float | None = None,
        timeout: float | None = None,
    ):
        self.resident_directory = resident_directory
        self.biometric_verifier = biometric_verifier
        self.ekyc_service = ekyc_service
        self.partner_registry = partner_registry
        self.otp_manager = otp_manager or OTPManager(
            session_factory=session_factory, timeout=timeout
        )
        self.token_issuer = token_issuer or TokenIssuer(
            session_factory=session_factory, timeout=timeout
        )
        self.lock_service = lock_service or AuthLockService(
            session_factory=session_factory, timeout=timeout
        )
        self._session_factory = session_factory
        self._log_db = log_db
        self.match_threshold = (
            settings.DEMOGRAPHIC_MATCH_THRESHOLD
            if match_threshold is None
            else match_threshold
        )
        self._timeout = timeout

    # =========================================================================
    # OTP
    # =========================================================================

    async def send_otp(
        self,
        user_id: str,
        otp_type: OTPType | str = OTPType.SMS,
        contact: str | None = None,
        timeout: float | None = None,
    ) -> OTPDispatchResult:
        """
        Generate an OTP and dispatch it to the resident.

        When no contact is given, the on-file phone (sms) or email (email) is
        used.

        Args:
            user_id: The resident's identifier.
            otp_type: Delivery channel.
            contact: Explicit destination, overriding the on-file contact.
            timeout: Budget in seconds per I/O call.

        Returns:
            OTPDispatchResult: Acknowledgement with ``expires_in`` seconds, or
            a locked result when OTP authentication is locked.

        Raises:
            ValidationException: If no contact is available for the channel
                or otp_type is not a known channel.
            ResidentNotFoundException: If the resident is unknown.
            NotificationException: If the notifier fails.
        """
        if not user_id:
            raise ValidationException("user_id is required")
        otp_type = coerce_enum(OTPType, otp_type, "otp_type")

        if await self.lock_service.is_locked(user_id, AuthType.OTP, timeout=timeout):
            auth_logger.info(f"OTP send rejected for user {user_id}: method locked")
            return OTPDispatchResult(
                success=False,
                message="OTP authentication is locked",
                locked=True,
            )

        destination = contact
        if not destination:
            record = await self._get_on_file(user_id, timeout)
            destination = record.phone if otp_type == OTPType.SMS else record.email
        if not destination:
            raise ValidationException(
                f"No {otp_type.value} contact available for user",
                details={"otp_type": otp_type.value},
            )

        code = await self.otp_manager.generate(
            user_id, otp_type, destination, timeout=timeout
        )
        await self.otp_manager.dispatch(destination, code, otp_type, timeout=timeout)

        auth_logger.info(
            f"OTP sent for user {user_id} via {otp_type.value} to {mask_contact(destination)}"
        )
        return OTPDispatchResult(
            success=True,
            message=f"OTP sent to {'phone' if otp_type == OTPType.SMS else 'email'}",
            expires_in=self.otp_manager.expires_in,
        )

    async def otp_authenticate(
        self,
        user_id: str,
        code: str,
        otp_type: OTPType | str = OTPType.SMS,
        timeout: float | None = None,
    ) -> AuthResult:
        """
        Verify an OTP and record the attempt.

        Returns:
            AuthResult: Success, or failure with reason "Invalid OTP" for any
            wrong, expired, exhausted or missing code.
        """
        if not user_id:
            raise ValidationException("user_id is required")
        otp_type = coerce_enum(OTPType, otp_type, "otp_type")

        if await self.lock_service.is_locked(user_id, AuthType.OTP, timeout=timeout):
            return self._locked_result(user_id, AuthType.OTP)

        verified = await self.otp_manager.verify(user_id, code, otp_type, timeout=timeout)

        if not verified:
            await self._log_attempt(
                user_id, AuthType.OTP, AuthStatus.FAILED,
                failure_reason=INVALID_OTP_REASON, timeout=timeout,
            )
            return AuthResult(
                success=False,
                auth_type=AuthType.OTP,
                message="Invalid or expired OTP",
                reason=INVALID_OTP_REASON,
            )

        await self._log_attempt(user_id, AuthType.OTP, AuthStatus.SUCCESS, timeout=timeout)
        return AuthResult(
            success=True,
            auth_type=AuthType.OTP,
            message="OTP verified successfully",
        )

    # =========================================================================
    # Demographic
    # =========================================================================

    async def demographic_authenticate(
        self,
        user_id: str,
        claimed: DemographicRecord,
        timeout: float | None = None,
    ) -> AuthResult:
        """
        Fuzzy-match claimed demographics against the on-file record.

        Returns:
            AuthResult: Carries ``match_score`` rounded to two decimals. On
            failure the reason is "Match score NN.NN% below threshold".

        Raises:
            ResidentNotFoundException: If the resident is unknown.
        """
        if not user_id:
            raise ValidationException("user_id is required")

        if await self.lock_service.is_locked(
            user_id, AuthType.DEMOGRAPHIC, timeout=timeout
        ):
            return self._locked_result(user_id, AuthType.DEMOGRAPHIC)

        on_file = await self._get_on_file(user_id, timeout)
        result = matcher.score(on_file, claimed, threshold=self.match_threshold)

        if not result.authenticated:
            reason = f"Match score {result.total:.2f}% below threshold"
            await self._log_attempt(
                user_id, AuthType.DEMOGRAPHIC, AuthStatus.FAILED,
                failure_reason=reason, timeout=timeout,
            )
            return AuthResult(
                success=False,
                auth_type=AuthType.DEMOGRAPHIC,
                message="Demographic data does not match",
                reason=reason,
                match_score=result.rounded,
            )

        await self._log_attempt(
            user_id, AuthType.DEMOGRAPHIC, AuthStatus.SUCCESS, timeout=timeout
        )
        return AuthResult(
            success=True,
            auth_type=AuthType.DEMOGRAPHIC,
            message="Demographic authentication successful",
            match_score=result.rounded,
        )

    # =========================================================================
    # Biometric
    # =========================================================================

    async def biometric_authenticate(
        self,
        user_id: str,
        sample: Any,
        modality: BiometricModality | str = BiometricModality.FINGERPRINT,
        timeout: float | None = None,
    ) -> AuthResult:
        """
        Verify a biometric sample through the external verifier.

        The lock is scoped to the modality: a locked iris does not block
        fingerprint authentication.
        """
        if not user_id:
            raise ValidationException("user_id is required")
        modality = coerce_enum(BiometricModality, modality, "modality")

        if await self.lock_service.is_locked(
            user_id, AuthType.BIOMETRIC, modality, timeout=timeout
        ):
            return self._locked_result(user_id, AuthType.BIOMETRIC, modality)

        verdict = await self._call_port(
            self.biometric_verifier.verify(user_id, sample, modality),
            "Biometric verification",
            timeout,
        )

        if not verdict.success:
            await self._log_attempt(
                user_id, AuthType.BIOMETRIC, AuthStatus.FAILED,
                failure_reason=BIOMETRIC_FAILED_REASON, timeout=timeout,
            )
            return AuthResult(
                success=False,
                auth_type=AuthType.BIOMETRIC,
                message=f"{modality.value.capitalize()} authentication failed",
                reason=BIOMETRIC_FAILED_REASON,
                match_score=verdict.score,
            )

        await self._log_attempt(
            user_id, AuthType.BIOMETRIC, AuthStatus.SUCCESS, timeout=timeout
        )
        return AuthResult(
            success=True,
            auth_type=AuthType.BIOMETRIC,
            message=f"{modality.value.capitalize()} authentication successful",
            match_score=verdict.score,
        )

    # =========================================================================
    # e-KYC
    # =========================================================================

    async def ekyc_authenticate(
        self,
        user_id: str,
        partner_id: str,
        policy_id: str | None = None,
        timeout: float | None = None,
    ) -> EKYCResult:
        """
        Release an encrypted e-KYC payload and a PSUT to an active partner.

        Flow:
            1. Partner must exist and be active.
            2. The e-KYC service builds the payload under the partner policy.
            3. The token issuer returns the pair's live PSUT.
            4. A success row with the partner id is written to the audit log.

        Raises:
            InvalidPartnerException: If the partner is unknown or not active.
            ExternalServiceException: If the e-KYC service fails.
        """
        if not user_id or not partner_id:
            raise ValidationException("user_id and partner_id are required")

        partner = await self._call_port(
            self.partner_registry.get_partner(partner_id),
            "Partner lookup",
            timeout,
        )
        if partner is None or not partner.is_active:
            auth_logger.warning(
                f"e-KYC rejected for user {user_id}: partner {partner_id} is "
                f"{'unknown' if partner is None else partner.status.value}"
            )
            raise InvalidPartnerException()

        payload = await self._call_port(
            self.ekyc_service.build_response(user_id, partner_id, policy_id),
            "e-KYC response",
            timeout,
        )
        token = await self.token_issuer.issue_or_reuse(
            user_id, partner_id, timeout=timeout
        )

        await self._log_attempt(
            user_id, AuthType.EKYC, AuthStatus.SUCCESS,
            partner_id=partner_id, timeout=timeout,
        )
        return EKYCResult(ekyc_data=payload.encrypted_payload, token=token)

    # =========================================================================
    # Pass-throughs
    # =========================================================================

    async def validate_token(
        self, token: str, partner_id: str, timeout: float | None = None
    ) -> TokenValidation:
        return await self.token_issuer.validate(token, partner_id, timeout=timeout)

    async def revoke_token(
        self,
        user_id: str,
        partner_id: str,
        reason: str | None = None,
        timeout: float | None = None,
    ) -> bool:
        return await self.token_issuer.revoke(
            user_id, partner_id, reason, timeout=timeout
        )

    async def cleanup_otps(self, timeout: float | None = None) -> int:
        return await self.otp_manager.cleanup(timeout=timeout)

    async def sweep_expired_tokens(self, timeout: float | None = None) -> int:
        return await self.token_issuer.sweep_expired(timeout=timeout)

    async def get_history(
        self, user_id: str, limit: int = 50, timeout: float | None = None
    ) -> Sequence[AuthenticationLog]:
        """Most recent audit rows for a resident, newest first."""

        async def _read() -> Sequence[AuthenticationLog]:
            async with self._session_factory() as session:
                return await self._log_db.history(session, user_id, limit=limit)

        return await run_db_operation(
            _read(), self._budget(timeout), "Authentication history"
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _get_on_file(
        self, user_id: str, timeout: float | None
    ) -> DemographicRecord:
        record = await self._call_port(
            self.resident_directory.get_demographics(user_id),
            "Resident lookup",
            timeout,
        )
        if record is None:
            raise ResidentNotFoundException()
        return record

    async def _call_port(
        self, awaitable: Awaitable[T], operation: str, timeout: float | None
    ) -> T:
        try:
            return await with_timeout(awaitable, self._budget(timeout), operation)
        except AppException:
            raise
        except Exception as e:
            auth_logger.error(f"{operation} failed: {str(e)}")
            raise ExternalServiceException(
                message=f"{operation} failed",
                details={"operation": operation},
            ) from e

    async def _log_attempt(
        self,
        user_id: str,
        auth_type: AuthType,
        auth_status: AuthStatus,
        partner_id: str | None = None,
        failure_reason: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Write an audit row; a failed write is logged and swallowed."""

        async def _append() -> None:
            async with self._session_factory.begin() as session:
                await self._log_db.append(
                    session,
                    user_id=user_id,
                    auth_type=auth_type,
                    auth_status=auth_status,
                    partner_id=partner_id,
                    failure_reason=failure_reason,
                    commit_self=False,
                )

        try:
            await run_db_operation(
                _append(), self._budget(timeout), "Audit log write"
            )
        except Exception as e:
            auth_logger.error(
                f"Failed to write authentication log for user {user_id} "
                f"({auth_type.value}/{auth_status.value}): {str(e)}"
            )
            return

        auth_logger.info(
            f"Authentication {auth_status.value}: user={user_id}, type={auth_type.value}"
            + (f", reason={failure_reason}" if failure_reason else "")
        )

    def _locked_result(
        self,
        user_id: str,
        auth_type: AuthType,
        modality: BiometricModality | None = None,
    ) -> AuthResult:
        label = modality.value if modality else auth_type.value
        auth_logger.info(f"{label} authentication rejected for user {user_id}: locked")
        return AuthResult(
            success=False,
            auth_type=auth_type,
            message=f"{label.capitalize()} authentication is locked",
            reason="locked",
            locked=True,
        )

    def _budget(self, timeout: float | None) -> float | None:
        return self._timeout if timeout is None else timeout
