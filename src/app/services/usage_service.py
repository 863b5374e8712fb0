# src/app/services/usage_service.py
"""
Usage accounting.
Checks the per-user extraction allowance and counts successful extractions.
"""
from __future__ import annotations

import logging

from src.app.domain.errors import UsageLimitExceededError
from src.app.domain.models import UsageStatus
from src.app.infra.db.base import UsageRepository

logger = logging.getLogger(__name__)


class UsageService:
    """
    Service for extraction usage limits.

    Responsibilities:
    - Tell whether a user may start another extraction
    - Count an extraction once its recipe is saved
    """

    def __init__(self, repository: UsageRepository):
        self._repo = repository

    def can_extract(self, user_id: str) -> UsageStatus:
        """
        Current usage for a user.

        Returns:
            UsageStatus with allowed=False once used reaches the plan limit
        """
        return self._repo.get_usage(user_id)

    def ensure_can_extract(self, user_id: str) -> UsageStatus:
        """
        Raises:
            UsageLimitExceededError: If the user has no extractions left
        """
        status = self.can_extract(user_id)
        if not status.allowed:
            logger.info("Extraction limit reached: user=%s used=%d limit=%d", user_id, status.used, status.limit)
            raise UsageLimitExceededError(used=status.used, limit=status.limit, plan_tier=status.plan_tier)
        return status

    def record_extraction(self, user_id: str) -> None:
        self._repo.increment_usage(user_id)
        logger.info("Extraction recorded: user=%s", user_id)
