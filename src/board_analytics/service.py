from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .aggregator import process_membership_data
from .config import DashboardConfig
from .errors import SourceError
from .result import Err
from .sources import MembershipSource

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"


@dataclass(frozen=True)
class ServiceResponse:
    status_code: int
    body: Dict[str, Any]
    source: str

    @property
    def is_fallback(self) -> bool:
        return self.source == FALLBACK_SOURCE


class MembershipAnalyticsService:
    """
    Loads memberships, aggregates them and applies the fallback policy.

    The policy mirrors how the board dashboard has always behaved:
      - development mode or no configured source: serve the fallback snapshot
      - failures in production or development: serve the fallback snapshot
      - failures anywhere else: 500 with ``fallbackAvailable`` so the caller
        can decide what to show
    """

    def __init__(self, config: DashboardConfig, source: Optional[MembershipSource]) -> None:
        self.config = config
        self.source = source

    def get_memberships(self, now: Optional[datetime] = None) -> ServiceResponse:
        now = now or datetime.now(timezone.utc)

        if self.config.is_development or self.source is None:
            logger.info("Using fallback data (development mode or missing credentials)")
            return self._fallback(now)

        try:
            memberships, orders = self.source.load()
        except SourceError as exc:
            logger.warning("Membership source error: %s", exc)
            return self._failure(str(exc), now)
        except Exception as exc:
            logger.exception("Unexpected error loading memberships from %s", self.source.name)
            return self._failure(str(exc), now)

        result = process_membership_data(
            memberships,
            orders,
            now=now,
            renewal_window_days=self.config.renewal_window_days,
        )
        if isinstance(result, Err):
            return self._failure(result.reason, now)
        return ServiceResponse(status_code=200, body=result.value.as_dict(), source=self.source.name)

    def _fallback(self, now: datetime) -> ServiceResponse:
        return ServiceResponse(status_code=200, body=self.config.fallback.render(now), source=FALLBACK_SOURCE)

    def _failure(self, reason: str, now: datetime) -> ServiceResponse:
        if self.config.is_production or self.config.is_development:
            logger.info("Membership data unavailable in %s, using fallback data", self.config.environment)
            return self._fallback(now)
        return ServiceResponse(
            status_code=500,
            body={
                "message": "Error fetching data",
                "error": reason,
                "fallbackAvailable": True,
            },
            source=self.source.name if self.source is not None else FALLBACK_SOURCE,
        )
