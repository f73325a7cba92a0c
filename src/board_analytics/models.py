from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import MalformedRecordError


def parse_datetime(value: Any) -> datetime:
    """
    Parse WooCommerce style timestamps into timezone-aware datetimes.

    Accepts ISO-8601 strings (``2024-06-01``, ``2024-06-01T10:00:00``,
    ``2024-06-01T10:00:00Z``), ``date`` and ``datetime`` objects. Naive values
    are treated as UTC.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"not a timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        raise ValueError(f"timestamp out of range: {value!r}") from exc


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


@dataclass(frozen=True)
class MembershipRecord:
    """
    One membership grant as reported by the WooCommerce Memberships export.

    ``expiration`` is ``None`` for unlimited plans.
    """

    member_email: str
    plan: str
    status: str
    member_since: datetime
    last_active: datetime
    expiration: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], index: int = 0) -> "MembershipRecord":
        email = payload.get("member_email")
        if not email:
            raise MalformedRecordError(index, "member_email")

        member_since = _required_datetime(payload, "member_since", index)
        last_active = _required_datetime(payload, "member_last_active", index)

        expiration_raw = payload.get("membership_expiration")
        try:
            expiration = parse_datetime(expiration_raw) if expiration_raw else None
        except (TypeError, ValueError) as exc:
            raise MalformedRecordError(index, "membership_expiration", str(exc)) from exc

        return cls(
            member_email=str(email),
            plan=str(payload.get("membership_plan") or ""),
            status=str(payload.get("membership_status") or ""),
            member_since=member_since,
            last_active=last_active,
            expiration=expiration,
            id=payload.get("user_membership_id"),
        )


def _required_datetime(payload: Mapping[str, Any], key: str, index: int) -> datetime:
    value = payload.get(key)
    if value is None or value == "":
        raise MalformedRecordError(index, key)
    try:
        return parse_datetime(value)
    except (TypeError, ValueError) as exc:
        raise MalformedRecordError(index, key, str(exc)) from exc


@dataclass(frozen=True)
class MembershipEntry:
    id: Optional[int]
    plan: str
    status: str
    expiration: Optional[datetime]


@dataclass
class MemberSummary:
    join_date: datetime
    last_active: Optional[datetime] = None
    memberships: List[MembershipEntry] = field(default_factory=list)


@dataclass
class ActivitySegments:
    last_7_days: int = 0
    last_30_days: int = 0
    last_90_days: int = 0
    inactive_90_plus: int = 0

    def total(self) -> int:
        return self.last_7_days + self.last_30_days + self.last_90_days + self.inactive_90_plus


@dataclass
class MembershipDistribution:
    single: int = 0
    two: int = 0
    three_plus: int = 0

    def total(self) -> int:
        return self.single + self.two + self.three_plus


@dataclass
class MetricsSummary:
    total_memberships: int = 0
    unique_members: int = 0
    activity_segments: ActivitySegments = field(default_factory=ActivitySegments)
    membership_distribution: MembershipDistribution = field(default_factory=MembershipDistribution)
    cancelled_memberships: int = 0
    renewals_pending: int = 0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MetricsSummary":
        segments = payload.get("activitySegments") or {}
        distribution = payload.get("membershipDistribution") or {}
        return cls(
            total_memberships=int(payload.get("totalMemberships", 0)),
            unique_members=int(payload.get("uniqueMembers", 0)),
            activity_segments=ActivitySegments(
                last_7_days=int(segments.get("last7days", 0)),
                last_30_days=int(segments.get("last30days", 0)),
                last_90_days=int(segments.get("last90days", 0)),
                inactive_90_plus=int(segments.get("inactive90Plus", 0)),
            ),
            membership_distribution=MembershipDistribution(
                single=int(distribution.get("singleMembership", 0)),
                two=int(distribution.get("twoMemberships", 0)),
                three_plus=int(distribution.get("threePlusMemberships", 0)),
            ),
            cancelled_memberships=int(payload.get("cancelledMemberships", 0)),
            renewals_pending=int(payload.get("renewalsPending", 0)),
        )

    def as_dict(self) -> Dict[str, Any]:
        segments = self.activity_segments
        distribution = self.membership_distribution
        return {
            "totalMemberships": self.total_memberships,
            "uniqueMembers": self.unique_members,
            "activitySegments": {
                "last7days": segments.last_7_days,
                "last30days": segments.last_30_days,
                "last90days": segments.last_90_days,
                "inactive90Plus": segments.inactive_90_plus,
            },
            "membershipDistribution": {
                "singleMembership": distribution.single,
                "twoMemberships": distribution.two,
                "threePlusMemberships": distribution.three_plus,
            },
            "cancelledMemberships": self.cancelled_memberships,
            "renewalsPending": self.renewals_pending,
        }


@dataclass
class AggregationResult:
    metrics: MetricsSummary
    member_data: Dict[str, MemberSummary]

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert the result into the JSON structure served by ``/api/memberships``.

        Dates are emitted as ISO-8601 strings so the board dashboard can feed
        them straight into ``new Date()``.
        """

        return {
            "metrics": self.metrics.as_dict(),
            "memberData": {
                email: {
                    "memberships": [_serialize_entry(entry) for entry in summary.memberships],
                    "lastActive": _isoformat(summary.last_active),
                    "joinDate": _isoformat(summary.join_date),
                }
                for email, summary in self.member_data.items()
            },
        }


def _serialize_entry(entry: MembershipEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "plan": entry.plan,
        "status": entry.status,
        "expiration": _isoformat(entry.expiration),
    }


@dataclass(frozen=True)
class CardMetric:
    key: str
    label: str
    value: float
    unit: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ChartRow:
    name: str
    value: float
    color: Optional[str] = None


@dataclass(frozen=True)
class PriorityAlert:
    horizon: str
    title: str
    description: str
    variant: str = "default"


@dataclass(frozen=True)
class BoardInsights:
    average_memberships_per_member: float
    average_membership_age_days: float
    renewal_risk: float
    engagement_score: float
    active_engagement_rate: float
    multiple_membership_rate: float
    retention_rate: float
    growth_rate: float = 0.0
    conversion_rate: float = 0.0
    cards: Iterable[CardMetric] = field(default_factory=tuple)
    membership_distribution: Iterable[ChartRow] = field(default_factory=tuple)
    activity_segments: Iterable[ChartRow] = field(default_factory=tuple)
    membership_length: Iterable[ChartRow] = field(default_factory=tuple)
    alerts: Iterable[PriorityAlert] = field(default_factory=tuple)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "averageMembershipsPerMember": self.average_memberships_per_member,
            "averageMembershipAgeDays": self.average_membership_age_days,
            "renewalRisk": self.renewal_risk,
            "engagementScore": self.engagement_score,
            "activeEngagementRate": self.active_engagement_rate,
            "multipleMembershipRate": self.multiple_membership_rate,
            "retentionRate": self.retention_rate,
            "growthRate": self.growth_rate,
            "conversionRate": self.conversion_rate,
            "cards": [
                {
                    "key": card.key,
                    "label": card.label,
                    "value": card.value,
                    "unit": card.unit,
                    "description": card.description,
                }
                for card in self.cards
            ],
            "membershipDistribution": [_serialize_row(row) for row in self.membership_distribution],
            "activitySegments": [_serialize_row(row) for row in self.activity_segments],
            "membershipLength": [_serialize_row(row) for row in self.membership_length],
            "alerts": [
                {
                    "horizon": alert.horizon,
                    "title": alert.title,
                    "description": alert.description,
                    "variant": alert.variant,
                }
                for alert in self.alerts
            ],
        }


def _serialize_row(row: ChartRow) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"name": row.name, "value": row.value}
    if row.color is not None:
        payload["color"] = row.color
    return payload
