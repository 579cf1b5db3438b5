"""
Collaborator ports consumed by the authentication core.

Each external system (notification transport, biometric matcher, e-KYC
payload builder, partner registry, resident directory) is reached through
one abstract class here. Concrete adapters live with the deployment; the
core only depends on these signatures.

Example usage:
    from identity_auth.core.services.ports import Notifier

    class TwilioNotifier(Notifier):
        async def send(self, channel, destination, code) -> None:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from identity_auth.core.config import otp_logger
from identity_auth.core.enums import BiometricModality, OTPType, PartnerStatus
from identity_auth.core.schemas.auth import DemographicRecord
from identity_auth.core.utils import mask_contact, mask_otp


__all__ = [
    "BiometricResult",
    "BiometricVerifier",
    "EKYCDataService",
    "EKYCPayload",
    "LoggingNotifier",
    "Notifier",
    "PartnerInfo",
    "PartnerRegistry",
    "ResidentDirectory",
]


@dataclass
class BiometricResult:
    """
    Verdict returned by the external biometric verifier.

    Attributes:
        success: Whether the sample matched the enrolled template.
        score: Optional matcher score, opaque to this core.
    """

    success: bool
    score: float | None = None


@dataclass
class EKYCPayload:
    """
    Encrypted identity payload produced by the e-KYC data service.

    Attributes:
        encrypted_payload: Payload released to the partner; its structure is
            owned by the e-KYC service.
        request_id: Optional reference of the e-KYC request.
    """

    encrypted_payload: Any
    request_id: str | None = None


@dataclass
class PartnerInfo:
    """Registry view of a relying partner."""

    partner_id: str
    status: PartnerStatus
    name: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == PartnerStatus.ACTIVE


class Notifier(ABC):
    """Transport that delivers OTP codes over SMS or email."""

    @abstractmethod
    async def send(self, channel: OTPType, destination: str, code: str) -> None:
        """
        Deliver ``code`` to ``destination`` over ``channel``.

        Raises:
            Exception: Any transport failure; the caller wraps it.
        """


class BiometricVerifier(ABC):
    """External matcher for fingerprint, iris and face samples."""

    @abstractmethod
    async def verify(
        self, user_id: str, sample: Any, modality: BiometricModality
    ) -> BiometricResult:
        """Match ``sample`` against the resident's enrolled template."""


class EKYCDataService(ABC):
    """External builder of policy-filtered, encrypted e-KYC payloads."""

    @abstractmethod
    async def build_response(
        self, user_id: str, partner_id: str, policy_id: str | None
    ) -> EKYCPayload:
        """Produce the encrypted payload released to ``partner_id``."""


class PartnerRegistry(ABC):
    """Lookup of relying partners and their status."""

    @abstractmethod
    async def get_partner(self, partner_id: str) -> PartnerInfo | None:
        """Return the partner, or None when unknown."""


class ResidentDirectory(ABC):
    """Lookup of a resident's on-file demographic and contact data."""

    @abstractmethod
    async def get_demographics(self, user_id: str) -> DemographicRecord | None:
        """Return the on-file record, or None when the resident is unknown."""


class LoggingNotifier(Notifier):
    """
    Development notifier that records dispatches in the OTP log.

    The code itself is only logged at DEBUG and masked otherwise.
    """

    async def send(self, channel: OTPType, destination: str, code: str) -> None:
        otp_logger.info(
            f"OTP dispatched (dev): channel={channel.value}, "
            f"destination={mask_contact(destination)}, code={mask_otp(code)}"
        )
        otp_logger.debug(f"OTP for {destination}: {code}")
