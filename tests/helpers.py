from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

NOW = datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc)


def membership(
    email: str,
    *,
    since: str = "2024-01-01",
    last_active: Optional[str] = None,
    days_inactive: Optional[float] = None,
    plan: str = "Standard",
    status: str = "active",
    expiration: Optional[str] = "2025-01-01",
    membership_id: Optional[int] = None,
) -> Dict[str, Any]:
    if last_active is None:
        last_active = (NOW - timedelta(days=days_inactive or 0)).isoformat()
    return {
        "user_membership_id": membership_id,
        "member_email": email,
        "membership_plan": plan,
        "membership_status": status,
        "membership_expiration": expiration,
        "member_since": since,
        "member_last_active": last_active,
    }
