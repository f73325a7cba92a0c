from __future__ import annotations

import base64
import http.client
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from .config import DashboardConfig, DatabaseConfig, WooCommerceConfig
from .errors import SourceError

logger = logging.getLogger(__name__)

Records = Sequence[Dict[str, Any]]

MEMBERSHIP_COLUMNS = (
    "user_membership_id",
    "member_email",
    "membership_plan",
    "membership_status",
    "membership_expiration",
    "member_since",
    "member_last_active",
)
_SELECT_COLUMNS = ", ".join(MEMBERSHIP_COLUMNS)
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class MembershipSource:
    """
    Interface for loading raw membership and order records.

    Implementations return plain dictionaries shaped like the WooCommerce
    payload; parsing and validation happen in the aggregator so that a bad
    record is reported the same way regardless of where it came from.
    """

    name = "unknown"

    def load(self) -> Tuple[Records, Records]:
        raise NotImplementedError


class WooCommerceSource(MembershipSource):
    """
    Thin client for the WooCommerce REST API.

    Authenticates with the consumer key/secret pair over HTTP basic auth and
    walks ``X-WP-TotalPages`` up to ``max_pages``.
    """

    name = "woocommerce"

    def __init__(self, config: WooCommerceConfig):
        if not config.configured:
            raise ValueError("WooCommerce url, consumer key and consumer secret are required")
        self.config = config
        self.base_url = f"{config.url.rstrip('/')}/wp-json/{config.api_version.strip('/')}"

    def load(self) -> Tuple[Records, Records]:
        memberships = self.get_all("memberships")
        orders = self.get_all("orders", {"product_type": "membership"})
        return memberships, orders

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = {"per_page": self.config.per_page, "page": page, **(params or {})}
            payload, total_pages = self._get(endpoint, query)
            records.extend(payload)
            if page >= min(total_pages, self.config.max_pages):
                return records
            page += 1

    def _headers(self) -> Dict[str, str]:
        token = f"{self.config.consumer_key}:{self.config.consumer_secret}".encode("utf-8")
        return {
            "Authorization": f"Basic {base64.b64encode(token).decode('ascii')}",
            "Accept": "application/json",
        }

    def _get(self, endpoint: str, query: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], int]:
        url = f"{self.base_url}/{endpoint}?{urllib.parse.urlencode(query)}"
        logger.debug("Fetching WooCommerce %s page %s", endpoint, query.get("page"))
        req = urllib.request.Request(url, headers=self._headers(), method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.config.timeout_seconds) as resp:
                body = json.loads(resp.read().decode("utf-8"))
                total_pages = resp.headers.get("X-WP-TotalPages")
        except urllib.error.HTTPError as exc:
            raise SourceError(f"WooCommerce {endpoint} request failed with HTTP {exc.code}") from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError) as exc:
            raise SourceError(f"WooCommerce {endpoint} request failed: {exc}") from exc
        except ValueError as exc:
            raise SourceError(f"WooCommerce {endpoint} returned invalid JSON: {exc}") from exc

        if not isinstance(body, list):
            raise SourceError(f"WooCommerce {endpoint} returned {type(body).__name__}, expected a list")

        try:
            pages = int(total_pages) if total_pages else 1
        except ValueError:
            pages = 1
        return body, max(1, pages)


class SQLMembershipSource(MembershipSource):
    """
    Read memberships from a SQL mirror of the WooCommerce store.

    Expected table (name configurable):
      - board_memberships(user_membership_id, member_email, membership_plan,
        membership_status, membership_expiration, member_since, member_last_active)

    Orders are not mirrored, so ``load`` always returns an empty order list.
    """

    name = "database"

    def __init__(self, engine: Engine, table: str = "board_memberships"):
        if not _TABLE_NAME.match(table):
            raise ValueError(f"invalid table name: {table!r}")
        self.engine = engine
        self.table = table

    def load(self) -> Tuple[Records, Records]:
        query = text(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM {self.table}
            ORDER BY user_membership_id ASC
            """
        )
        try:
            with self.engine.connect() as connection:
                rows = connection.execute(query).fetchall()
        except SQLAlchemyError as exc:
            raise SourceError(f"failed to read memberships from {self.table}: {exc}") from exc
        return tuple(self._row_to_payload(row) for row in rows), ()

    @staticmethod
    def _row_to_payload(row: Row) -> Dict[str, Any]:
        return dict(row._mapping)


def build_source_from_env(config: DashboardConfig) -> Optional[MembershipSource]:
    """
    Pick the membership source for the current configuration.

    A configured database wins over WooCommerce; ``None`` means neither is
    available and the service will serve fallback data.
    """

    database: DatabaseConfig = config.database
    if database.url:
        return SQLMembershipSource(create_engine(database.url), table=database.membership_table)
    if config.woocommerce.configured:
        return WooCommerceSource(config.woocommerce)
    return None
