from __future__ import annotations

from datetime import datetime, timezone
from statistics import mean
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import (
    BoardInsights,
    CardMetric,
    ChartRow,
    MemberSummary,
    MetricsSummary,
    PriorityAlert,
    parse_datetime,
)

ENGAGEMENT_WEIGHTS = (1.0, 0.7, 0.3)
ACTIVITY_COLORS = ("#22c55e", "#3b82f6", "#f59e0b", "#ef4444")
DISTRIBUTION_COLORS = ("#0088FE", "#00C49F", "#FFBB28", "#FF8042")
# Upper bounds in days; members past the last bound fall into "Over 1 Year".
TENURE_BUCKETS = (("Under 6 Months", 183), ("6-12 Months", 365))


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100


def _build_card(
    key: str,
    label: str,
    value: float,
    unit: Optional[str] = None,
    description: Optional[str] = None,
) -> CardMetric:
    return CardMetric(key=key, label=label, value=round(value, 1), unit=unit, description=description)


def average_membership_age_days(join_dates: Iterable[datetime], now: datetime) -> float:
    ages = [(now - joined).total_seconds() / 86400 for joined in join_dates]
    return mean(ages) if ages else 0.0


def engagement_score(metrics: MetricsSummary) -> float:
    segments = metrics.activity_segments
    weighted = (
        segments.last_7_days * ENGAGEMENT_WEIGHTS[0]
        + segments.last_30_days * ENGAGEMENT_WEIGHTS[1]
        + segments.last_90_days * ENGAGEMENT_WEIGHTS[2]
    )
    return _ratio(weighted, metrics.unique_members)


def renewal_risk(metrics: MetricsSummary) -> float:
    return _ratio(metrics.activity_segments.inactive_90_plus, metrics.unique_members)


class BoardInsightsBuilder:
    """
    Derives the display-only figures shown on the board dashboard.

    Everything here is a pure function of the metrics summary and the members'
    join dates. Growth and conversion rates need history we do not keep, so
    they are always reported as zero.
    """

    def __init__(self, metrics: MetricsSummary, join_dates: Sequence[datetime]) -> None:
        self.metrics = metrics
        self.join_dates = join_dates

    def build(self, now: Optional[datetime] = None) -> BoardInsights:
        now = now or datetime.now(timezone.utc)
        metrics = self.metrics
        segments = metrics.activity_segments
        distribution = metrics.membership_distribution

        per_member = metrics.total_memberships / metrics.unique_members if metrics.unique_members else 0.0
        age_days = average_membership_age_days(self.join_dates, now)
        risk = renewal_risk(metrics)
        score = engagement_score(metrics)
        active_rate = _ratio(segments.last_7_days + segments.last_30_days, metrics.total_memberships)
        multiple_rate = _ratio(distribution.two + distribution.three_plus, metrics.unique_members)
        retention = _ratio(max(metrics.unique_members - metrics.cancelled_memberships, 0), metrics.unique_members)

        cards = [
            _build_card("unique_members", "Total Members", metrics.unique_members, description="Unique Accounts"),
            _build_card(
                "total_memberships", "Total Memberships", metrics.total_memberships, description="Active Subscriptions"
            ),
            _build_card(
                "avg_memberships", "Avg. Memberships/Member", per_member, description="Per Unique Account"
            ),
            _build_card("avg_member_age", "Avg. Member Age", age_days, unit="days", description="Days Since Joining"),
            _build_card("active_engagement_rate", "Active Engagement Rate", active_rate, unit="%"),
            _build_card("multiple_membership_rate", "Multiple Membership Rate", multiple_rate, unit="%"),
            _build_card("renewal_risk", "Renewal Risk", risk, unit="%"),
            _build_card("engagement_score", "Engagement Score", score, unit="%"),
            _build_card("retention_rate", "Member Retention Rate", retention, unit="%"),
        ]

        return BoardInsights(
            average_memberships_per_member=per_member,
            average_membership_age_days=age_days,
            renewal_risk=risk,
            engagement_score=score,
            active_engagement_rate=active_rate,
            multiple_membership_rate=multiple_rate,
            retention_rate=retention,
            cards=cards,
            membership_distribution=self._distribution_rows(),
            activity_segments=self._activity_rows(),
            membership_length=self._membership_length_rows(now),
            alerts=self._alerts(multiple_rate),
        )

    def _distribution_rows(self) -> List[ChartRow]:
        distribution = self.metrics.membership_distribution
        values = (
            ("Single Membership", distribution.single),
            ("Two Memberships", distribution.two),
            ("Three+ Memberships", distribution.three_plus),
        )
        return [
            ChartRow(name=name, value=value, color=DISTRIBUTION_COLORS[index % len(DISTRIBUTION_COLORS)])
            for index, (name, value) in enumerate(values)
        ]

    def _activity_rows(self) -> List[ChartRow]:
        segments = self.metrics.activity_segments
        values = (
            ("Last 7 Days", segments.last_7_days),
            ("8-30 Days", segments.last_30_days),
            ("31-90 Days", segments.last_90_days),
            ("90+ Days", segments.inactive_90_plus),
        )
        return [ChartRow(name=name, value=value, color=color) for (name, value), color in zip(values, ACTIVITY_COLORS)]

    def _membership_length_rows(self, now: datetime) -> List[ChartRow]:
        counts = [0] * (len(TENURE_BUCKETS) + 1)
        for joined in self.join_dates:
            tenure_days = (now - joined).total_seconds() / 86400
            for index, (_, limit) in enumerate(TENURE_BUCKETS):
                if tenure_days < limit:
                    counts[index] += 1
                    break
            else:
                counts[-1] += 1
        names = [name for name, _ in TENURE_BUCKETS] + ["Over 1 Year"]
        return [ChartRow(name=name, value=count) for name, count in zip(names, counts)]

    def _alerts(self, multiple_rate: float) -> List[PriorityAlert]:
        alerts: List[PriorityAlert] = []
        if self.metrics.renewals_pending:
            alerts.append(
                PriorityAlert(
                    horizon="immediate",
                    title="Immediate (Next 7 Days)",
                    description=f"Launch renewal campaign for {self.metrics.renewals_pending} expiring memberships",
                    variant="destructive",
                )
            )
        inactive = self.metrics.activity_segments.inactive_90_plus
        if inactive:
            alerts.append(
                PriorityAlert(
                    horizon="short_term",
                    title="Short-term (30 Days)",
                    description=f"Implement re-engagement program for {inactive} inactive members",
                )
            )
        if self.metrics.unique_members and multiple_rate < 100:
            alerts.append(
                PriorityAlert(
                    horizon="strategic",
                    title="Strategic (90 Days)",
                    description="Develop multiple membership incentive program",
                )
            )
        return alerts


def derive_insights(
    metrics: MetricsSummary,
    member_data: Mapping[str, MemberSummary],
    now: Optional[datetime] = None,
) -> BoardInsights:
    join_dates = [summary.join_date for summary in member_data.values()]
    return BoardInsightsBuilder(metrics, join_dates).build(now)


def derive_insights_from_payload(payload: Mapping[str, Any], now: Optional[datetime] = None) -> BoardInsights:
    """Same as :func:`derive_insights` but for an already serialised ``{metrics, memberData}`` body."""
    metrics = MetricsSummary.from_dict(payload.get("metrics") or {})
    member_data: Dict[str, Any] = payload.get("memberData") or {}
    join_dates = [
        parse_datetime(summary["joinDate"])
        for summary in member_data.values()
        if isinstance(summary, dict) and summary.get("joinDate")
    ]
    return BoardInsightsBuilder(metrics, join_dates).build(now)
