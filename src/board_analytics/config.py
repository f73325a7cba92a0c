"""
Runtime configuration for the board analytics backend.

Values come from environment variables (``.env`` is loaded by the server on
startup). The fallback payload is part of the configuration so callers can
inject their own snapshot instead of relying on a module level constant.
"""

from __future__ import annotations

import copy
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

def default_fallback_metrics() -> Dict[str, Any]:
    return {
        "totalMemberships": 792,
        "uniqueMembers": 248,
        "activitySegments": {
            "last7days": 22,
            "last30days": 106,
            "last90days": 197,
            "inactive90Plus": 467,
        },
        "membershipDistribution": {
            "singleMembership": 3,
            "twoMemberships": 76,
            "threePlusMemberships": 169,
        },
        "cancelledMemberships": 1,
        "renewalsPending": 660,
    }


def default_fallback_member_data() -> Dict[str, Any]:
    # lastActive=None is replaced by the render time.
    return {
        "example@email.com": {
            "memberships": [
                {
                    "id": 1,
                    "plan": "Standard",
                    "status": "active",
                    "expiration": "2025-01-01T00:00:00+00:00",
                }
            ],
            "lastActive": None,
            "joinDate": "2023-08-25T00:00:00+00:00",
        }
    }


class FallbackConfig(BaseModel):
    """Static snapshot served when live data is unavailable."""

    metrics: Dict[str, Any] = Field(default_factory=default_fallback_metrics)
    member_data: Dict[str, Any] = Field(default_factory=default_fallback_member_data)

    def render(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Return a fresh ``{metrics, memberData}`` payload safe for callers to mutate."""
        now = now or datetime.now(timezone.utc)
        member_data = copy.deepcopy(self.member_data)
        for summary in member_data.values():
            if isinstance(summary, dict) and summary.get("lastActive") is None:
                summary["lastActive"] = now.isoformat()
        return {"metrics": copy.deepcopy(self.metrics), "memberData": member_data}

    @classmethod
    def from_file(cls, path: str) -> "FallbackConfig":
        payload = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        return cls(
            metrics=payload["metrics"] if "metrics" in payload else default_fallback_metrics(),
            member_data=payload["memberData"] if "memberData" in payload else default_fallback_member_data(),
        )


class WooCommerceConfig(BaseModel):
    url: Optional[str] = None
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    api_version: str = "wc/v3"
    timeout_seconds: int = 30
    per_page: int = 100
    max_pages: int = 1

    @property
    def configured(self) -> bool:
        return bool(self.url and self.consumer_key and self.consumer_secret)


class DatabaseConfig(BaseModel):
    url: Optional[str] = None
    membership_table: str = "board_memberships"


class DashboardConfig(BaseModel):
    environment: str = "production"
    woocommerce: WooCommerceConfig = Field(default_factory=WooCommerceConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    renewal_window_days: int = 30
    poll_interval_seconds: int = 300

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_environment(default: str) -> str:
    raw = (os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "").strip().lower()
    return raw or default


def load_config() -> DashboardConfig:
    cfg = DashboardConfig()

    cfg.environment = _env_environment(cfg.environment)
    cfg.woocommerce = WooCommerceConfig(
        url=os.getenv("WOOCOMMERCE_URL", cfg.woocommerce.url),
        consumer_key=os.getenv("WOOCOMMERCE_KEY", cfg.woocommerce.consumer_key),
        consumer_secret=os.getenv("WOOCOMMERCE_SECRET", cfg.woocommerce.consumer_secret),
        api_version=os.getenv("WOOCOMMERCE_API_VERSION", cfg.woocommerce.api_version),
        timeout_seconds=_env_int("WOOCOMMERCE_TIMEOUT_SECONDS", cfg.woocommerce.timeout_seconds),
        per_page=_env_int("WOOCOMMERCE_PER_PAGE", cfg.woocommerce.per_page),
        max_pages=max(1, _env_int("WOOCOMMERCE_MAX_PAGES", cfg.woocommerce.max_pages)),
    )
    cfg.database = DatabaseConfig(
        url=os.getenv("BOARD_ANALYTICS_DATABASE_URL", cfg.database.url),
        membership_table=os.getenv("BOARD_ANALYTICS_MEMBERSHIP_TABLE", cfg.database.membership_table),
    )

    fallback_file = os.getenv("BOARD_ANALYTICS_FALLBACK_FILE")
    if fallback_file:
        cfg.fallback = FallbackConfig.from_file(fallback_file)

    cfg.renewal_window_days = _env_int("BOARD_ANALYTICS_RENEWAL_WINDOW_DAYS", cfg.renewal_window_days)
    cfg.poll_interval_seconds = _env_int("BOARD_ANALYTICS_POLL_INTERVAL_SECONDS", cfg.poll_interval_seconds)
    return cfg
