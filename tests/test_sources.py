"""Tests for board_analytics.sources."""

import base64
import http.client
import json
import urllib.error
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import create_engine, text

from board_analytics.config import DashboardConfig, DatabaseConfig, WooCommerceConfig
from board_analytics.errors import SourceError
from board_analytics.sources import (
    SQLMembershipSource,
    WooCommerceSource,
    build_source_from_env,
)

from helpers import membership

WOO = WooCommerceConfig(url="https://shop.example.org/", consumer_key="ck_1", consumer_secret="cs_2")


def _response(body, total_pages=None):
    resp = MagicMock()
    resp.read.return_value = json.dumps(body).encode("utf-8")
    resp.headers = {"X-WP-TotalPages": total_pages} if total_pages is not None else {}
    resp.__enter__.return_value = resp
    return resp


def _requested(mock_urlopen):
    requests = [call.args[0] for call in mock_urlopen.call_args_list]
    return [(urlparse(req.full_url), req) for req in requests]


def test_load_fetches_memberships_and_orders():
    responses = [_response([membership("a@x.com")]), _response([{"id": 9}])]
    with patch("urllib.request.urlopen", side_effect=responses) as mock_urlopen:
        memberships, orders = WooCommerceSource(WOO).load()

    assert memberships[0]["member_email"] == "a@x.com"
    assert orders == [{"id": 9}]

    (members_url, members_req), (orders_url, _) = _requested(mock_urlopen)
    assert members_url.path == "/wp-json/wc/v3/memberships"
    assert parse_qs(members_url.query) == {"per_page": ["100"], "page": ["1"]}
    assert orders_url.path == "/wp-json/wc/v3/orders"
    assert parse_qs(orders_url.query)["product_type"] == ["membership"]
    assert parse_qs(orders_url.query)["per_page"] == ["100"]

    expected = base64.b64encode(b"ck_1:cs_2").decode("ascii")
    assert members_req.get_header("Authorization") == f"Basic {expected}"
    assert mock_urlopen.call_args_list[0].kwargs["timeout"] == 30


def test_single_page_by_default():
    with patch("urllib.request.urlopen", return_value=_response([], total_pages="5")) as mock_urlopen:
        WooCommerceSource(WOO).get_all("memberships")
    assert mock_urlopen.call_count == 1


def test_pagination_stops_at_total_pages():
    cfg = WOO.model_copy(update={"max_pages": 10})
    responses = [_response([{"n": 1}], "2"), _response([{"n": 2}], "2")]
    with patch("urllib.request.urlopen", side_effect=responses) as mock_urlopen:
        records = WooCommerceSource(cfg).get_all("memberships")
    assert records == [{"n": 1}, {"n": 2}]
    assert mock_urlopen.call_count == 2


def test_pagination_respects_max_pages():
    cfg = WOO.model_copy(update={"max_pages": 2})
    responses = [_response([{"n": i}], "7") for i in range(3)]
    with patch("urllib.request.urlopen", side_effect=responses) as mock_urlopen:
        records = WooCommerceSource(cfg).get_all("memberships")
    assert len(records) == 2
    assert mock_urlopen.call_count == 2


def test_http_error_becomes_source_error():
    error = urllib.error.HTTPError("https://shop.example.org", 401, "Unauthorized", {}, None)
    with patch("urllib.request.urlopen", side_effect=error):
        with pytest.raises(SourceError, match="HTTP 401"):
            WooCommerceSource(WOO).load()


def test_network_error_becomes_source_error():
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("connection refused")):
        with pytest.raises(SourceError, match="connection refused"):
            WooCommerceSource(WOO).load()


def test_truncated_response_becomes_source_error():
    with patch("urllib.request.urlopen", side_effect=http.client.IncompleteRead(b"")):
        with pytest.raises(SourceError, match="memberships request failed"):
            WooCommerceSource(WOO).load()


def test_invalid_json_becomes_source_error():
    resp = _response([])
    resp.read.return_value = b"<html>maintenance</html>"
    with patch("urllib.request.urlopen", return_value=resp):
        with pytest.raises(SourceError, match="invalid JSON"):
            WooCommerceSource(WOO).load()


def test_non_list_payload_becomes_source_error():
    with patch("urllib.request.urlopen", return_value=_response({"code": "woocommerce_rest_error"})):
        with pytest.raises(SourceError, match="expected a list"):
            WooCommerceSource(WOO).load()


def test_requires_credentials():
    with pytest.raises(ValueError):
        WooCommerceSource(WooCommerceConfig(url="https://shop.example.org"))


def _sqlite_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'memberships.db'}")
    with engine.begin() as connection:
        connection.execute(
            text(
                """
                CREATE TABLE board_memberships (
                    user_membership_id INTEGER PRIMARY KEY,
                    member_email TEXT,
                    membership_plan TEXT,
                    membership_status TEXT,
                    membership_expiration TEXT,
                    member_since TEXT,
                    member_last_active TEXT
                )
                """
            )
        )
        for index, email in enumerate(["b@x.com", "a@x.com"], start=1):
            connection.execute(
                text(
                    "INSERT INTO board_memberships VALUES "
                    "(:id, :email, 'Standard', 'active', '2025-01-01', '2024-01-01', '2024-06-01')"
                ),
                {"id": index, "email": email},
            )
    return engine


def test_sql_source_loads_rows(tmp_path):
    memberships, orders = SQLMembershipSource(_sqlite_engine(tmp_path)).load()
    assert orders == ()
    assert [row["member_email"] for row in memberships] == ["b@x.com", "a@x.com"]
    assert memberships[0]["member_last_active"] == "2024-06-01"
    assert memberships[0]["user_membership_id"] == 1


def test_sql_source_missing_table(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    with pytest.raises(SourceError, match="board_memberships"):
        SQLMembershipSource(engine).load()


def test_sql_source_rejects_unsafe_table_name(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    with pytest.raises(ValueError):
        SQLMembershipSource(engine, table="members; DROP TABLE users")


def test_build_source_prefers_database(tmp_path):
    cfg = DashboardConfig(
        woocommerce=WOO,
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'x.db'}"),
    )
    assert isinstance(build_source_from_env(cfg), SQLMembershipSource)


def test_build_source_woocommerce():
    assert isinstance(build_source_from_env(DashboardConfig(woocommerce=WOO)), WooCommerceSource)


def test_build_source_none_without_configuration():
    assert build_source_from_env(DashboardConfig()) is None
