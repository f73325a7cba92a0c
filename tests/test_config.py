"""Tests for board_analytics.config."""

import json
from datetime import datetime, timezone

from board_analytics.config import (
    DashboardConfig,
    FallbackConfig,
    WooCommerceConfig,
    default_fallback_metrics,
    load_config,
)

ENV_VARS = (
    "APP_ENV",
    "NODE_ENV",
    "WOOCOMMERCE_URL",
    "WOOCOMMERCE_KEY",
    "WOOCOMMERCE_SECRET",
    "WOOCOMMERCE_MAX_PAGES",
    "WOOCOMMERCE_TIMEOUT_SECONDS",
    "WOOCOMMERCE_PER_PAGE",
    "BOARD_ANALYTICS_DATABASE_URL",
    "BOARD_ANALYTICS_FALLBACK_FILE",
    "BOARD_ANALYTICS_RENEWAL_WINDOW_DAYS",
    "BOARD_ANALYTICS_POLL_INTERVAL_SECONDS",
)


def _clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear_env(monkeypatch)
    cfg = load_config()
    assert cfg.environment == "production"
    assert cfg.is_production
    assert not cfg.woocommerce.configured
    assert cfg.woocommerce.per_page == 100
    assert cfg.woocommerce.max_pages == 1
    assert cfg.database.url is None
    assert cfg.renewal_window_days == 30
    assert cfg.poll_interval_seconds == 300


def test_node_env_is_honoured(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("NODE_ENV", "development")
    assert load_config().is_development


def test_app_env_wins_over_node_env(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("NODE_ENV", "development")
    monkeypatch.setenv("APP_ENV", "Staging")
    assert load_config().environment == "staging"


def test_unknown_environment_is_kept(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("APP_ENV", " QA-Cluster ")
    cfg = load_config()
    assert cfg.environment == "qa-cluster"
    assert not cfg.is_production
    assert not cfg.is_development


def test_blank_environment_keeps_default(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("APP_ENV", "  ")
    assert load_config().environment == "production"


def test_woocommerce_credentials(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("WOOCOMMERCE_URL", "https://shop.example.org")
    monkeypatch.setenv("WOOCOMMERCE_KEY", "ck_123")
    monkeypatch.setenv("WOOCOMMERCE_SECRET", "cs_456")
    monkeypatch.setenv("WOOCOMMERCE_MAX_PAGES", "0")
    monkeypatch.setenv("WOOCOMMERCE_TIMEOUT_SECONDS", "abc")
    cfg = load_config()
    assert cfg.woocommerce.configured
    assert cfg.woocommerce.max_pages == 1
    assert cfg.woocommerce.timeout_seconds == 30


def test_partial_credentials_are_not_configured():
    assert not WooCommerceConfig(url="https://shop.example.org", consumer_key="ck").configured


def test_fallback_render_matches_documented_snapshot():
    now = datetime(2024, 7, 1, tzinfo=timezone.utc)
    payload = FallbackConfig().render(now)
    assert payload["metrics"] == {
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
    member = payload["memberData"]["example@email.com"]
    assert member["lastActive"] == now.isoformat()
    assert member["joinDate"] == "2023-08-25T00:00:00+00:00"
    assert member["memberships"][0]["plan"] == "Standard"


def test_fallback_render_returns_copies():
    fallback = FallbackConfig()
    first = fallback.render()
    first["metrics"]["uniqueMembers"] = 0
    first["memberData"].clear()
    second = fallback.render()
    assert second["metrics"]["uniqueMembers"] == 248
    assert "example@email.com" in second["memberData"]
    assert fallback.member_data["example@email.com"]["lastActive"] is None


def test_fallback_from_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    snapshot = {
        "metrics": dict(default_fallback_metrics(), uniqueMembers=12),
        "memberData": {"board@example.org": {"memberships": [], "lastActive": "2024-01-01", "joinDate": None}},
    }
    path = tmp_path / "fallback.json"
    path.write_text(json.dumps(snapshot), encoding="utf-8")
    monkeypatch.setenv("BOARD_ANALYTICS_FALLBACK_FILE", str(path))

    payload = load_config().fallback.render()
    assert payload["metrics"]["uniqueMembers"] == 12
    assert payload["memberData"]["board@example.org"]["lastActive"] == "2024-01-01"


def test_injected_configs_do_not_share_fallback():
    first = DashboardConfig()
    second = DashboardConfig()
    first.fallback.metrics["uniqueMembers"] = 1
    assert second.fallback.metrics["uniqueMembers"] == 248


def test_fallback_file_with_empty_member_data(tmp_path):
    path = tmp_path / "fallback.json"
    path.write_text(json.dumps({"metrics": {"uniqueMembers": 0}, "memberData": {}}), encoding="utf-8")
    fallback = FallbackConfig.from_file(str(path))
    assert fallback.member_data == {}
    assert fallback.metrics == {"uniqueMembers": 0}


def test_fallback_file_without_member_data_uses_sample(tmp_path):
    path = tmp_path / "fallback.json"
    path.write_text(json.dumps({"metrics": {"uniqueMembers": 0}}), encoding="utf-8")
    assert "example@email.com" in FallbackConfig.from_file(str(path)).member_data
