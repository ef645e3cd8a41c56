"""
Tests for view ingestion, visitor sessions and analytics rollups.
"""
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from pastry_publishing.database.governance_indexes import (
    INTERACTIONS_COLLECTION,
    VIEWS_COLLECTION,
    VISITOR_SESSIONS_COLLECTION,
)
from pastry_publishing.errors import InvalidArgumentError, StorageUnavailableError
from pastry_publishing.models.analytics_models import EnrichmentResult
from pastry_publishing.services.analytics_aggregator import AnalyticsAggregator, engagement_score, is_bounce
from pastry_publishing.services.enrichment_service import Enrichment, NullEnrichment

from conftest import BASE_TIME

CLOCK = "pastry_publishing.utils.clock.utc_now"


class StaticEnrichment(Enrichment):
    def __init__(self, result=None, error=None):
        self.result = result or EnrichmentResult()
        self.error = error
        self.calls = []

    async def enrich(self, ip_address, user_agent):
        self.calls.append((ip_address, user_agent))
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def aggregator(storage):
    return AnalyticsAggregator(storage=storage, enrichment=NullEnrichment())


def test_bounce_classification():
    assert is_bounce(5, 10) is True
    assert is_bounce(30, 80) is False
    # Either signal of engagement is enough
    assert is_bounce(30, 10) is False
    assert is_bounce(5, 80) is False


def test_engagement_score_is_clamped():
    assert engagement_score(0, 0, 1.0, 0) == 0.0
    assert engagement_score(6000, 100, 0.0, 10) == 100.0


@pytest.mark.asyncio
async def test_ingest_classifies_bounce(aggregator, storage):
    bounced = await aggregator.ingest_view("content-1", "v-1", time_spent=5, scroll_depth=10)
    engaged = await aggregator.ingest_view("content-1", "v-1", time_spent=30, scroll_depth=80)
    explicit = await aggregator.ingest_view("content-1", "v-1", time_spent=5, scroll_depth=10, bounced=False)

    assert bounced.bounced is True
    assert engaged.bounced is False
    assert explicit.bounced is False
    assert len(storage.all(VIEWS_COLLECTION)) == 3


@pytest.mark.asyncio
async def test_provisional_view_is_always_bounced(aggregator):
    view = await aggregator.ingest_view(
        "content-1", "v-1", time_spent=120, scroll_depth=90, bounced=False, provisional=True
    )
    assert view.bounced is True
    assert view.provisional is True


@pytest.mark.asyncio
async def test_ingest_rejects_invalid_arguments(aggregator, storage):
    with pytest.raises(InvalidArgumentError):
        await aggregator.ingest_view("", "v-1")
    with pytest.raises(InvalidArgumentError):
        await aggregator.ingest_view("content-1", "v-1", time_spent=-1)
    with pytest.raises(InvalidArgumentError):
        await aggregator.ingest_view("content-1", "v-1", scroll_depth=101)
    assert storage.all(VIEWS_COLLECTION) == []


@pytest.mark.asyncio
async def test_session_counters_increment(aggregator, storage):
    """First sight creates the session; later events add views and time."""
    details = EnrichmentResult(country="FR", device="mobile")
    with patch(CLOCK, return_value=BASE_TIME):
        first = await aggregator.upsert_session("v-1", details, elapsed=10)
    with patch(CLOCK, return_value=BASE_TIME + timedelta(minutes=5)):
        second = await aggregator.upsert_session("v-1", elapsed=20)

    assert first.page_views == 1
    assert second.page_views == 2
    assert second.total_time == 30
    assert second.first_seen == BASE_TIME
    assert second.last_seen == BASE_TIME + timedelta(minutes=5)
    assert second.country == "FR"
    assert len(storage.all(VISITOR_SESSIONS_COLLECTION)) == 1


@pytest.mark.asyncio
async def test_aggregate_without_views(aggregator):
    summary = await aggregator.aggregate("content-1")

    assert summary.total_views == 0
    assert summary.bounce_rate == 0
    assert summary.engagement_score == 0
    assert summary.window_days == 30


@pytest.mark.asyncio
async def test_aggregate_rejects_bad_window(aggregator):
    with pytest.raises(InvalidArgumentError):
        await aggregator.aggregate("content-1", window_days=0)
    with pytest.raises(InvalidArgumentError):
        await aggregator.aggregate("content-1", window_days=366)


@pytest.mark.asyncio
async def test_aggregate_rollup(aggregator, storage):
    """Rollup over a trailing window with distinct visitors, bounce rate, locations and devices."""
    with patch(CLOCK, return_value=BASE_TIME):
        await aggregator.ingest_view(
            "content-1", "a", time_spent=120, scroll_depth=80, location=EnrichmentResult(country="FR", city="Paris")
        )
        await aggregator.ingest_view(
            "content-1", "a", time_spent=5, scroll_depth=10, location=EnrichmentResult(country="FR", city="Paris")
        )
        await aggregator.ingest_view(
            "content-1", "b", time_spent=40, scroll_depth=60, location=EnrichmentResult(country="DE", city="Berlin")
        )
        await aggregator.ingest_view("content-2", "c", time_spent=500, scroll_depth=100)
    with patch(CLOCK, return_value=BASE_TIME - timedelta(days=40)):
        await aggregator.ingest_view("content-1", "old", time_spent=1, scroll_depth=1)

    storage.seed(
        INTERACTIONS_COLLECTION,
        {"visitor_id": "a", "content_id": "content-1", "type": "like", "value": None,
         "created_at": BASE_TIME, "updated_at": BASE_TIME},
    )
    for visitor_id, device in (("a", "mobile"), ("b", "desktop"), ("old", "tablet")):
        storage.seed(
            VISITOR_SESSIONS_COLLECTION,
            {"visitor_id": visitor_id, "device": device, "page_views": 1, "total_time": 0,
             "first_seen": BASE_TIME, "last_seen": BASE_TIME},
        )

    with patch(CLOCK, return_value=BASE_TIME + timedelta(hours=1)):
        summary = await aggregator.aggregate("content-1", window_days=30)

    assert summary.total_views == 3
    assert summary.unique_visitors == 2
    assert summary.avg_time_spent == 55.0
    assert summary.avg_scroll_depth == 50.0
    assert summary.bounce_rate == 0.3333
    assert summary.interaction_counts == {"like": 1}
    # 55/60*10 + 50*0.5 + (100 - 33.33)*0.3 + 1*5
    assert summary.engagement_score == 59.17
    assert [(c.country, c.views) for c in summary.top_countries] == [("FR", 2), ("DE", 1)]
    assert [(c.city, c.country, c.views) for c in summary.top_cities] == [("Paris", "FR", 2), ("Berlin", "DE", 1)]
    assert [(d.device, d.views) for d in summary.devices] == [("mobile", 2), ("desktop", 1)]


@pytest.mark.asyncio
async def test_unknown_country_is_not_ranked(aggregator):
    with patch(CLOCK, return_value=BASE_TIME):
        await aggregator.ingest_view("content-1", "a", time_spent=30, scroll_depth=30)
        summary = await aggregator.aggregate("content-1")

    assert summary.total_views == 1
    assert summary.top_countries == []
    assert summary.top_cities == []
    assert summary.devices == []


@pytest.mark.asyncio
async def test_track_view_enriches_and_counts_session(storage):
    enrichment = StaticEnrichment(EnrichmentResult(country="IT", city="Turin", browser="Firefox"))
    aggregator = AnalyticsAggregator(storage=storage, enrichment=enrichment)

    view = await aggregator.track_view(
        "content-1", "v-1", time_spent=3, scroll_depth=5, ip_address="203.0.113.7", user_agent="UA"
    )

    assert enrichment.calls == [("203.0.113.7", "UA")]
    assert view.country == "IT"
    assert view.city == "Turin"
    assert view.bounced is True
    session = storage.all(VISITOR_SESSIONS_COLLECTION)[0]
    assert session["browser"] == "Firefox"
    assert session["page_views"] == 1


@pytest.mark.asyncio
async def test_track_view_survives_enrichment_failure(storage):
    aggregator = AnalyticsAggregator(storage=storage, enrichment=StaticEnrichment(error=ValueError("bad json")))

    view = await aggregator.track_view("content-1", "v-1", time_spent=30, scroll_depth=30)

    assert view.country == "unknown"


@pytest.mark.asyncio
async def test_background_tracking_swallows_failures(aggregator, storage, caplog):
    """A storage failure in background tracking is logged, never raised."""
    with patch.object(storage, "create", AsyncMock(side_effect=StorageUnavailableError())):
        with caplog.at_level(logging.ERROR):
            task = aggregator.track_view_in_background(content_id="content-1", visitor_id="v-1")
            result = await task

    assert result is None
    assert "Background view tracking failed" in caplog.text


@pytest.mark.asyncio
async def test_background_tracking_stores_view(aggregator, storage):
    task = aggregator.track_view_in_background(
        content_id="content-1", visitor_id="v-1", provisional=True
    )
    view = await task

    assert view.provisional is True
    assert len(storage.all(VIEWS_COLLECTION)) == 1
