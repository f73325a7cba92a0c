"""
Board membership analytics.

Fetches membership records from WooCommerce (or a SQL mirror of it), reduces
them into the activity and distribution metrics the board dashboard renders,
and derives the display-only scores shown next to the charts.
"""

from .aggregator import aggregate_memberships, process_membership_data  # noqa: F401
from .config import DashboardConfig, FallbackConfig, load_config  # noqa: F401
from .errors import BoardAnalyticsError, MalformedRecordError, SourceError  # noqa: F401
from .insights import derive_insights, derive_insights_from_payload  # noqa: F401
from .models import (  # noqa: F401
    ActivitySegments,
    AggregationResult,
    BoardInsights,
    MemberSummary,
    MembershipDistribution,
    MembershipEntry,
    MembershipRecord,
    MetricsSummary,
)
from .polling import HTTPMembershipFetcher, MembershipPoller  # noqa: F401
from .result import Err, Ok, Result  # noqa: F401
from .service import MembershipAnalyticsService, ServiceResponse  # noqa: F401
from .sources import (  # noqa: F401
    MembershipSource,
    SQLMembershipSource,
    WooCommerceSource,
    build_source_from_env,
)
