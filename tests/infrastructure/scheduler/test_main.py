"""
Test suite for scheduler job registration.

Run tests:
    pytest tests/infrastructure/scheduler/test_main.py -v
"""

from unittest.mock import MagicMock, patch

from apscheduler.triggers.interval import IntervalTrigger

from identity_auth.core.services.otp import OTPManager
from identity_auth.core.services.tokens import TokenIssuer
from identity_auth.infrastructure.scheduler import main as scheduler_main
from identity_auth.infrastructure.scheduler.jobs import (
    cleanup_expired_otps,
    expire_partner_tokens,
)


class TestScheduleJobs:

    def test_schedule_cleanup_expired_otps_job(self):
        otp_manager = MagicMock(spec=OTPManager)

        with patch.object(scheduler_main.scheduler, "add_job") as mock_add_job:
            scheduler_main.schedule_cleanup_expired_otps_job(
                otp_manager, interval_minutes=10
            )

        args, kwargs = mock_add_job.call_args
        assert args[0] is cleanup_expired_otps
        assert isinstance(kwargs["trigger"], IntervalTrigger)
        assert kwargs["trigger"].interval.total_seconds() == 600
        assert kwargs["kwargs"] == {"otp_manager": otp_manager}
        assert kwargs["id"] == "cleanup_expired_otps_job"
        assert kwargs["replace_existing"] is True

    def test_schedule_expire_partner_tokens_job(self):
        token_issuer = MagicMock(spec=TokenIssuer)

        with patch.object(scheduler_main.scheduler, "add_job") as mock_add_job:
            scheduler_main.schedule_expire_partner_tokens_job(
                token_issuer, interval_minutes=30
            )

        args, kwargs = mock_add_job.call_args
        assert args[0] is expire_partner_tokens
        assert kwargs["trigger"].interval.total_seconds() == 1800
        assert kwargs["kwargs"] == {"token_issuer": token_issuer}
        assert kwargs["id"] == "expire_partner_tokens_job"

    def test_initialize_scheduler_uses_settings(self):
        otp_manager = MagicMock(spec=OTPManager)
        token_issuer = MagicMock(spec=TokenIssuer)

        with patch.object(scheduler_main, "settings") as mock_settings, patch.object(
            scheduler_main, "schedule_cleanup_expired_otps_job"
        ) as mock_otp_job, patch.object(
            scheduler_main, "schedule_expire_partner_tokens_job"
        ) as mock_token_job:
            mock_settings.OTP_CLEANUP_INTERVAL_MINUTES = 15
            mock_settings.TOKEN_SWEEP_INTERVAL_MINUTES = 60

            scheduler_main.initialize_scheduler(otp_manager, token_issuer)

        mock_otp_job.assert_called_once_with(otp_manager, interval_minutes=15)
        mock_token_job.assert_called_once_with(token_issuer, interval_minutes=60)
