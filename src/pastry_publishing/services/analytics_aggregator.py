"""
# Analytics Aggregator Service

This module ingests **view events** and **visitor sessions** and computes per-content rollups for
reporting. It is fed asynchronously from the request boundary and must never slow down or fail the
request that produced the event.

## Ingestion

- **Views**: Every event is stored as its own `ViewRecord`. The page-load event is written first as a
  provisional bounce; the session-end event follows with real metrics. Records are never updated in
  place, engagement is derived at query time.
- **Bounce classification**: `time_spent < BOUNCE_TIME_THRESHOLD_SECONDS` **and**
  `scroll_depth < BOUNCE_SCROLL_THRESHOLD_PERCENT`, unless the caller supplies `bounced` explicitly.
- **Sessions**: One `VisitorSession` per visitor, upserted with an atomic increment of `page_views` and
  `total_time`. Counters only ever grow.

## Rollup

```
aggregate(content_id, window_days)
    total_views       row count in the trailing window
    unique_visitors   distinct visitor_id count
    avg_time_spent    mean seconds per view
    avg_scroll_depth  mean scroll percentage
    bounce_rate       bounced / total_views  (0 when there are no views)
    engagement_score  min(100, avg_time/60*10 + avg_scroll*0.5 + (100 - bounce%)*0.3 + 5 * interaction types)
    top_countries     views per country, unknown excluded
    top_cities        views per (city, country), unknown excluded
    devices           views per device of the viewing visitor's session
```

## Fire-and-Forget

`track_view_in_background()` schedules `track_view()` with `asyncio.create_task`; failures are logged
with `exc_info=True` and swallowed.
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set
import uuid

from pastry_publishing.config import settings
from pastry_publishing.database.governance_indexes import (
    INTERACTIONS_COLLECTION,
    VIEWS_COLLECTION,
    VISITOR_SESSIONS_COLLECTION,
)
from pastry_publishing.database.storage import MongoStorage, Storage
from pastry_publishing.errors import ConflictError, InvalidArgumentError
from pastry_publishing.managers.logging_manager import get_logger
from pastry_publishing.models.analytics_models import (
    UNKNOWN,
    AnalyticsSummary,
    CityCount,
    CountryCount,
    DeviceCount,
    EnrichmentResult,
    ViewRecord,
    VisitorSession,
)
from pastry_publishing.services.enrichment_service import Enrichment, get_enrichment, safe_enrich
from pastry_publishing.utils import clock
from pastry_publishing.utils.documents import to_document

logger = get_logger(prefix="[AnalyticsAggregator]")


def is_bounce(time_spent: float, scroll_depth: float) -> bool:
    """Low-engagement classification for a view without an explicit bounce flag."""
    return (
        time_spent < settings.BOUNCE_TIME_THRESHOLD_SECONDS
        and scroll_depth < settings.BOUNCE_SCROLL_THRESHOLD_PERCENT
    )


def engagement_score(
    avg_time_spent: float, avg_scroll_depth: float, bounce_rate: float, interaction_types: int
) -> float:
    """Weighted 0-100 engagement score; `bounce_rate` is a fraction."""
    score = (
        (avg_time_spent / 60) * 10
        + avg_scroll_depth * 0.5
        + (100 - bounce_rate * 100) * 0.3
        + interaction_types * 5
    )
    return round(min(100.0, max(0.0, score)), 2)


class AnalyticsAggregator:
    """
    Service for view/session ingestion and rollups.

    Args:
        storage (Optional[Storage]): Persistence collaborator. Defaults to `MongoStorage`.
        enrichment (Optional[Enrichment]): Fingerprint enrichment. Defaults to `get_enrichment()`.
    """

    def __init__(self, storage: Optional[Storage] = None, enrichment: Optional[Enrichment] = None):
        self.storage = storage or MongoStorage()
        self.enrichment = enrichment or get_enrichment()
        self.views_collection = VIEWS_COLLECTION
        self.sessions_collection = VISITOR_SESSIONS_COLLECTION
        self.interactions_collection = INTERACTIONS_COLLECTION
        self._background_tasks: Set[asyncio.Task] = set()

    async def ingest_view(
        self,
        content_id: str,
        visitor_id: str,
        time_spent: float = 0,
        scroll_depth: float = 0,
        bounced: Optional[bool] = None,
        provisional: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        location: Optional[EnrichmentResult] = None,
        referrer: Optional[str] = None,
    ) -> ViewRecord:
        """
        Store one view event.

        A provisional (page-load) event is always recorded as bounced. Otherwise `bounced` is taken from
        the caller when given, or classified from `time_spent` and `scroll_depth`.

        Raises:
            InvalidArgumentError: Missing ids, negative time, or scroll depth outside 0-100.
        """
        if not content_id or not visitor_id:
            raise InvalidArgumentError("content_id and visitor_id are required")
        if time_spent is None or time_spent < 0:
            raise InvalidArgumentError("time_spent must be zero or positive")
        if scroll_depth is None or not 0 <= scroll_depth <= 100:
            raise InvalidArgumentError("scroll_depth must be between 0 and 100")

        if provisional:
            bounced = True
        elif bounced is None:
            bounced = is_bounce(time_spent, scroll_depth)

        location = location or EnrichmentResult()
        view = ViewRecord(
            view_id=f"view_{uuid.uuid4().hex[:12]}",
            content_id=content_id,
            visitor_id=visitor_id,
            ip_address=ip_address,
            user_agent=user_agent,
            country=location.country,
            city=location.city,
            region=location.region,
            time_spent=time_spent,
            scroll_depth=scroll_depth,
            bounced=bounced,
            provisional=provisional,
            referrer=referrer,
            created_at=clock.utc_now(),
        )
        await self.storage.create(self.views_collection, to_document(view))
        logger.debug("Ingested view %s of %s (bounced=%s)", view.view_id, content_id, bounced)
        return view

    async def upsert_session(
        self,
        visitor_id: str,
        details: Optional[EnrichmentResult] = None,
        elapsed: float = 0,
    ) -> VisitorSession:
        """
        Record a tracked event on the visitor's session.

        First sight creates the session with `page_views=1` and the device/location details; later
        events add one page view and `elapsed` seconds. `last_seen` is always set to now.
        """
        if not visitor_id:
            raise InvalidArgumentError("visitor_id is required")
        if elapsed is None or elapsed < 0:
            raise InvalidArgumentError("elapsed must be zero or positive")

        details = details or EnrichmentResult()
        now = clock.utc_now()
        create = {"visitor_id": visitor_id, "first_seen": now, **details.model_dump()}

        try:
            document = await self._increment_session(visitor_id, create, now, elapsed)
        except ConflictError:
            # Concurrent first sight; the other insert won, this one increments it
            document = await self._increment_session(visitor_id, create, now, elapsed)
        return VisitorSession(**document)

    async def _increment_session(
        self, visitor_id: str, create: Dict[str, Any], now, elapsed: float
    ) -> Dict[str, Any]:
        return await self.storage.upsert(
            self.sessions_collection,
            visitor_id,
            create=create,
            update={"last_seen": now},
            increment={"page_views": 1, "total_time": elapsed},
        )

    async def aggregate(self, content_id: str, window_days: Optional[int] = None) -> AnalyticsSummary:
        """
        Roll up views of a content item over the trailing `window_days` days.

        Raises:
            InvalidArgumentError: Window below 1 day or above `ANALYTICS_MAX_WINDOW_DAYS`.
        """
        if window_days is None:
            window_days = settings.ANALYTICS_DEFAULT_WINDOW_DAYS
        if window_days < 1 or window_days > settings.ANALYTICS_MAX_WINDOW_DAYS:
            raise InvalidArgumentError(
                f"window_days must be between 1 and {settings.ANALYTICS_MAX_WINDOW_DAYS}"
            )

        since = clock.utc_now() - timedelta(days=window_days)
        window = {"content_id": content_id, "created_at": {"$gte": since}}

        interactions = await self.storage.group_count(self.interactions_collection, window, "type")
        interaction_counts = {str(k): v for k, v in interactions.items() if k is not None}

        total_views = await self.storage.count(self.views_collection, window)
        if total_views == 0:
            return AnalyticsSummary(
                content_id=content_id, window_days=window_days, interaction_counts=interaction_counts
            )

        visitors = await self.storage.distinct(self.views_collection, "visitor_id", window)
        avg_time = await self.storage.average(self.views_collection, window, "time_spent") or 0.0
        avg_scroll = await self.storage.average(self.views_collection, window, "scroll_depth") or 0.0
        bounced = await self.storage.count(self.views_collection, {**window, "bounced": True})
        bounce_rate = bounced / total_views

        countries = await self.storage.group_count(self.views_collection, window, "country")
        top_countries = sorted(
            (CountryCount(country=str(country), views=views) for country, views in countries.items()
             if country and country != UNKNOWN),
            key=lambda c: (-c.views, c.country),
        )[: settings.ANALYTICS_TOP_COUNTRIES_LIMIT]

        cities = await self.storage.group_count(self.views_collection, window, ("city", "country"))
        top_cities = sorted(
            (CityCount(city=str(city), country=str(country or UNKNOWN), views=views)
             for (city, country), views in cities.items() if city and city != UNKNOWN),
            key=lambda c: (-c.views, c.city, c.country),
        )[: settings.ANALYTICS_TOP_COUNTRIES_LIMIT]

        return AnalyticsSummary(
            content_id=content_id,
            window_days=window_days,
            total_views=total_views,
            unique_visitors=len(visitors),
            avg_time_spent=round(avg_time, 2),
            avg_scroll_depth=round(avg_scroll, 2),
            bounce_rate=round(bounce_rate, 4),
            engagement_score=engagement_score(
                avg_time, avg_scroll, bounce_rate, sum(1 for v in interaction_counts.values() if v > 0)
            ),
            interaction_counts=interaction_counts,
            top_countries=top_countries,
            top_cities=top_cities,
            devices=await self._device_counts(window),
        )

    async def _device_counts(self, window: Dict[str, Any]) -> List[DeviceCount]:
        """Views in the window attributed to the device of each viewer's session."""
        per_visitor = await self.storage.group_count(self.views_collection, window, "visitor_id")
        if not per_visitor:
            return []
        sessions = await self.storage.find_many(
            self.sessions_collection, {"visitor_id": {"$in": [v for v in per_visitor if v is not None]}}
        )
        counts: Dict[str, int] = {}
        for session in sessions:
            device = session.get("device")
            if device and device != UNKNOWN:
                counts[device] = counts.get(device, 0) + per_visitor.get(session["visitor_id"], 0)
        return sorted(
            (DeviceCount(device=device, views=views) for device, views in counts.items()),
            key=lambda d: (-d.views, d.device),
        )

    async def track_view(
        self,
        content_id: str,
        visitor_id: str,
        time_spent: float = 0,
        scroll_depth: float = 0,
        bounced: Optional[bool] = None,
        provisional: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> ViewRecord:
        """Enrich the fingerprint, bump the visitor session and store the view."""
        details = await safe_enrich(self.enrichment, ip_address, user_agent)
        await self.upsert_session(visitor_id, details, elapsed=time_spent)
        return await self.ingest_view(
            content_id,
            visitor_id,
            time_spent=time_spent,
            scroll_depth=scroll_depth,
            bounced=bounced,
            provisional=provisional,
            ip_address=ip_address,
            user_agent=user_agent,
            location=details,
            referrer=referrer,
        )

    async def _track_quietly(self, **event: Any) -> Optional[ViewRecord]:
        try:
            return await self.track_view(**event)
        except Exception as e:
            logger.error(
                "Background view tracking failed for content %s: %s", event.get("content_id"), e, exc_info=True
            )
            return None

    def track_view_in_background(self, **event: Any) -> asyncio.Task:
        """
        Schedule `track_view` without awaiting it.

        Must be called from a running event loop. The returned task never raises.
        """
        task = asyncio.create_task(self._track_quietly(**event))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task


analytics_aggregator = AnalyticsAggregator()
