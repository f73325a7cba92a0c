from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .errors import BoardAnalyticsError
from .models import (
    ActivitySegments,
    AggregationResult,
    MemberSummary,
    MembershipDistribution,
    MembershipEntry,
    MembershipRecord,
    MetricsSummary,
)
from .result import Err, Ok, Result

logger = logging.getLogger(__name__)

RawMembership = Union[MembershipRecord, Mapping[str, Any]]

SECONDS_PER_DAY = 60 * 60 * 24
DEFAULT_RENEWAL_WINDOW_DAYS = 30
CANCELLED_STATUS = "cancelled"


def _coerce_record(record: RawMembership, index: int) -> MembershipRecord:
    if isinstance(record, MembershipRecord):
        return record
    return MembershipRecord.from_payload(record, index=index)


def _days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def _bucket_activity(segments: ActivitySegments, days_since_active: float) -> None:
    if days_since_active <= 7:
        segments.last_7_days += 1
    elif days_since_active <= 30:
        segments.last_30_days += 1
    elif days_since_active <= 90:
        segments.last_90_days += 1
    else:
        segments.inactive_90_plus += 1


def _bucket_distribution(distribution: MembershipDistribution, membership_count: int) -> None:
    if membership_count == 1:
        distribution.single += 1
    elif membership_count == 2:
        distribution.two += 1
    else:
        distribution.three_plus += 1


def _is_pending_renewal(record: MembershipRecord, renewal_cutoff: datetime) -> bool:
    if record.status == CANCELLED_STATUS or record.expiration is None:
        return False
    return record.expiration <= renewal_cutoff


def aggregate_memberships(
    memberships: Sequence[RawMembership],
    orders: Sequence[Any] = (),
    now: Optional[datetime] = None,
    renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS,
) -> AggregationResult:
    """
    Reduce a flat list of membership grants into board metrics.

    Members are keyed by email in first-seen order. A member's join date comes
    from the first record seen for that email and the last-active date is the
    latest timestamp across all of their records. ``orders`` is accepted so the
    signature matches what the WooCommerce source returns; it does not feed any
    metric yet.

    Raises ``MalformedRecordError`` when a record lacks an email or one of the
    required dates.
    """

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    renewal_cutoff = now + timedelta(days=renewal_window_days)

    member_data: Dict[str, MemberSummary] = {}
    cancelled = 0
    renewals_pending = 0

    for index, raw in enumerate(memberships):
        record = _coerce_record(raw, index)
        summary = member_data.get(record.member_email)
        if summary is None:
            summary = MemberSummary(join_date=record.member_since)
            member_data[record.member_email] = summary

        summary.memberships.append(
            MembershipEntry(
                id=record.id,
                plan=record.plan,
                status=record.status,
                expiration=record.expiration,
            )
        )
        if summary.last_active is None or record.last_active > summary.last_active:
            summary.last_active = record.last_active

        if record.status == CANCELLED_STATUS:
            cancelled += 1
        if _is_pending_renewal(record, renewal_cutoff):
            renewals_pending += 1

    segments = ActivitySegments()
    distribution = MembershipDistribution()
    for summary in member_data.values():
        _bucket_activity(segments, _days_between(now, summary.last_active))
        _bucket_distribution(distribution, len(summary.memberships))

    metrics = MetricsSummary(
        total_memberships=len(memberships),
        unique_members=len(member_data),
        activity_segments=segments,
        membership_distribution=distribution,
        cancelled_memberships=cancelled,
        renewals_pending=renewals_pending,
    )
    return AggregationResult(metrics=metrics, member_data=member_data)


def process_membership_data(
    memberships: Sequence[RawMembership],
    orders: Sequence[Any] = (),
    now: Optional[datetime] = None,
    renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS,
) -> Result[AggregationResult]:
    """Run :func:`aggregate_memberships` and report failures as ``Err`` instead of raising."""

    try:
        result = aggregate_memberships(
            memberships,
            orders,
            now=now,
            renewal_window_days=renewal_window_days,
        )
    except BoardAnalyticsError as exc:
        logger.warning("Error processing membership data: %s", exc)
        return Err(reason=str(exc), error=exc)
    except Exception as exc:
        logger.exception("Unexpected error processing membership data")
        return Err(reason=str(exc), error=exc)
    return Ok(result)
