from datetime import datetime, timezone

import pytest

from app.db.models import AIUsage
from app.services.rate_limit import (
    CAMPAIGN_GENERATOR_FEATURE,
    RateLimitError,
    check_rate_limit,
    enforce_rate_limit,
    start_of_next_month,
)

NOW = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)


def _add_usage(db_session, user_id: str, count: int, created_at: datetime, feature: str = CAMPAIGN_GENERATOR_FEATURE):
    for _ in range(count):
        db_session.add(
            AIUsage(user_id=user_id, feature=feature, tokens_used=100, cost_usd=0.001, created_at=created_at)
        )
    db_session.flush()


def test_fresh_user_can_generate(db_session, auth_context):
    info = check_rate_limit(db_session, auth_context.user_id, tier="free", now=NOW)
    assert info.can_generate is True
    assert info.daily_remaining == 5
    assert info.monthly_remaining == 150
    assert info.reset_at is None
    assert info.message is None


def test_daily_limit_blocks_until_next_midnight(db_session, auth_context):
    _add_usage(db_session, auth_context.user_id, 5, datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc))
    info = check_rate_limit(db_session, auth_context.user_id, tier="free", now=NOW)
    assert info.can_generate is False
    assert info.daily_used == 5
    assert info.daily_remaining == 0
    assert info.reset_at == datetime(2026, 3, 16, tzinfo=timezone.utc)
    assert info.message == "Daily limit reached (5 generations per day). Try again tomorrow."


def test_monthly_limit_blocks_until_first_of_next_month(db_session, auth_context):
    _add_usage(db_session, auth_context.user_id, 100, datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc))
    info = check_rate_limit(db_session, auth_context.user_id, tier="starter", now=NOW)
    assert info.can_generate is False
    assert info.daily_used == 0
    assert info.monthly_used == 100
    assert info.reset_at == datetime(2026, 4, 1, tzinfo=timezone.utc)
    assert info.message.startswith("Monthly limit reached (100 generations per month)")


def test_usage_from_other_features_and_previous_months_is_ignored(db_session, auth_context):
    _add_usage(db_session, auth_context.user_id, 5, NOW, feature="subject_line_tester")
    _add_usage(db_session, auth_context.user_id, 5, datetime(2026, 2, 27, tzinfo=timezone.utc))
    info = check_rate_limit(db_session, auth_context.user_id, tier="free", now=NOW)
    assert info.can_generate is True
    assert info.daily_used == 0
    assert info.monthly_used == 0


def test_enforce_raises_with_rate_limit_payload(db_session, auth_context):
    _add_usage(db_session, auth_context.user_id, 5, datetime(2026, 3, 15, 1, 0, tzinfo=timezone.utc))
    with pytest.raises(RateLimitError) as excinfo:
        enforce_rate_limit(db_session, auth_context.user_id, tier="free", now=NOW)
    payload = excinfo.value.to_payload()
    assert excinfo.value.status_code == 429
    assert payload["success"] is False
    assert payload["stage"] == "rate_limit"
    assert payload["rateLimit"]["daily_used"] == 5
    assert payload["rateLimit"]["reset_at"] == "2026-03-16T00:00:00+00:00"


def test_unknown_tier_is_rejected(db_session, auth_context):
    with pytest.raises(ValueError):
        check_rate_limit(db_session, auth_context.user_id, tier="platinum", now=NOW)


def test_start_of_next_month_rolls_over_year():
    assert start_of_next_month(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)) == datetime(
        2027, 1, 1, tzinfo=timezone.utc
    )


def test_rate_limit_endpoint_reports_default_tier(api_client):
    resp = api_client.get("/ai/rate-limit")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["tier"] == "pro"
    assert data["can_generate"] is True
    assert data["daily_used"] == 0
    assert data["daily_limit"] == 1000
