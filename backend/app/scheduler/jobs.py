"""Job bodies run by the scheduler. Each returns a count for its log line."""

from __future__ import annotations

from core.logging import get_logger
from core.security.tokens import get_token_service

logger = get_logger("backend.scheduler.jobs")


def run_revocation_prune() -> int:
    """
    Forget revocation entries for tokens that have expired on their own.

    The Redis backend lets keys expire natively and reports 0.
    """
    removed = get_token_service().prune_revocations()
    logger.info("revocation_prune_completed", removed=removed)
    return removed
