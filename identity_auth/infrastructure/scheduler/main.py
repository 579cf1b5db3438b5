"""
Scheduler for periodic identity maintenance sweeps.

Standalone Usage:
    python -m identity_auth.infrastructure.scheduler.main
"""

import asyncio
import logging
import signal
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from identity_auth.core.config import scheduler_logger, settings
from identity_auth.core.db import AsyncSessionLocal, dispose_db
from identity_auth.core.services.otp import OTPManager
from identity_auth.core.services.tokens import TokenIssuer


logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.INFO)


scheduler = AsyncIOScheduler(timezone=timezone.utc)


def schedule_cleanup_expired_otps_job(
    otp_manager: OTPManager, interval_minutes: int = 15
) -> None:
    """
    Schedule the cleanup_expired_otps job to run at specified intervals.

    Args:
        otp_manager (OTPManager): Manager handed to every run of the job.
        interval_minutes (int): Minutes between runs.
    """
    # Import here to avoid circular import issues
    from identity_auth.infrastructure.scheduler.jobs import cleanup_expired_otps

    scheduler_logger.info(
        f"Scheduling 'cleanup_expired_otps' job to run every {interval_minutes} minutes"
    )
    scheduler.add_job(
        cleanup_expired_otps,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=timezone.utc),
        kwargs={"otp_manager": otp_manager},
        replace_existing=True,
        id="cleanup_expired_otps_job",
        misfire_grace_time=60 * 5,  # 5 minutes grace time
        max_instances=1,
    )
    scheduler_logger.info("'cleanup_expired_otps' job scheduled successfully.")


def schedule_expire_partner_tokens_job(
    token_issuer: TokenIssuer, interval_minutes: int = 60
) -> None:
    """
    Schedule the expire_partner_tokens job to run at specified intervals.
    """
    from identity_auth.infrastructure.scheduler.jobs import expire_partner_tokens

    scheduler_logger.info(
        f"Scheduling 'expire_partner_tokens' job to run every {interval_minutes} minutes"
    )
    scheduler.add_job(
        expire_partner_tokens,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=timezone.utc),
        kwargs={"token_issuer": token_issuer},
        replace_existing=True,
        id="expire_partner_tokens_job",
        misfire_grace_time=60 * 15,  # 15 minutes grace time
        max_instances=1,
    )
    scheduler_logger.info("'expire_partner_tokens' job scheduled successfully.")


def initialize_scheduler(otp_manager: OTPManager, token_issuer: TokenIssuer) -> None:
    """
    Register every periodic job with the configured intervals.

    The jobs run with the services given here; the default in-memory job
    store keeps the instances as they are.
    """
    schedule_cleanup_expired_otps_job(
        otp_manager, interval_minutes=settings.OTP_CLEANUP_INTERVAL_MINUTES
    )
    schedule_expire_partner_tokens_job(
        token_issuer, interval_minutes=settings.TOKEN_SWEEP_INTERVAL_MINUTES
    )


async def main() -> None:
    """
    Main entry point for standalone scheduler execution.

    Starts the scheduler, registers the jobs and runs until SIGINT/SIGTERM.
    """
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        scheduler_logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    scheduler_logger.info("Starting standalone scheduler...")

    try:
        scheduler.start()
        scheduler_logger.info("Scheduler started successfully. Waiting for jobs...")
        initialize_scheduler(
            OTPManager(session_factory=AsyncSessionLocal),
            TokenIssuer(session_factory=AsyncSessionLocal),
        )
        await shutdown_event.wait()

    except Exception as e:
        scheduler_logger.exception(f"Scheduler error: {e}")
        raise

    finally:
        scheduler_logger.info("Shutting down scheduler...")

        if scheduler.running:
            scheduler.shutdown(wait=True)
            scheduler_logger.info("Scheduler stopped successfully.")

        await dispose_db()
        scheduler_logger.info("Scheduler shutdown complete.")


if __name__ == "__main__":
    asyncio.run(main())
