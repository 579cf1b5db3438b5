from identity_auth.infrastructure.scheduler.jobs import (
    cleanup_expired_otps,
    expire_partner_tokens,
)
from identity_auth.infrastructure.scheduler.main import initialize_scheduler, scheduler

__all__ = [
    "scheduler",
    "cleanup_expired_otps",
    "expire_partner_tokens",
    "initialize_scheduler",
]
