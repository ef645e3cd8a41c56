"""
# Analytics Models

Records produced by view/session ingestion and the summaries computed over them.

- **ViewRecord**: One tracked view event. The page-load event is stored as a provisional bounce and a
  later session-end event carries the real metrics; both are kept.
- **VisitorSession**: Per-visitor counters, incremented atomically by the storage upsert.
- **EnrichmentResult**: Location and device tuple from the enrichment service.
- **AnalyticsSummary**: Rollup over a trailing window of views.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

UNKNOWN = "unknown"


class EnrichmentResult(BaseModel):
    """Location and device details for a request fingerprint; unknown values when not resolvable."""

    country: str = Field(UNKNOWN, description="Country name or code")
    city: str = Field(UNKNOWN, description="City")
    region: str = Field(UNKNOWN, description="Region or state")
    device: str = Field(UNKNOWN, description="Device class (desktop, mobile, tablet)")
    browser: str = Field(UNKNOWN, description="Browser family")
    os: str = Field(UNKNOWN, description="Operating system family")


class ViewRecord(BaseModel):
    """
    A single tracked view event.

    Attributes:
        view_id (str): Unique identifier.
        content_id (str): Viewed content.
        visitor_id (str): Visitor fingerprint or user ID.
        time_spent (float): Seconds on page, `>= 0`.
        scroll_depth (float): Maximum scroll percentage, `0-100`.
        bounced (bool): Low-engagement classification.
        provisional (bool): `True` for the page-load event recorded before metrics exist.
    """

    view_id: str = Field(..., description="Unique view identifier")
    content_id: str = Field(..., description="Content ID")
    visitor_id: str = Field(..., description="Visitor ID")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    country: str = Field(UNKNOWN, description="Country")
    city: str = Field(UNKNOWN, description="City")
    region: str = Field(UNKNOWN, description="Region")
    time_spent: float = Field(0, ge=0, description="Seconds spent on page")
    scroll_depth: float = Field(0, ge=0, le=100, description="Max scroll depth percentage")
    bounced: bool = Field(True, description="Bounce classification")
    provisional: bool = Field(False, description="Page-load event without metrics")
    referrer: Optional[str] = Field(None, description="Referrer URL")
    created_at: datetime = Field(..., description="Event timestamp")


class VisitorSession(BaseModel):
    """Per-visitor aggregate counters; `page_views` and `total_time` only ever grow."""

    visitor_id: str = Field(..., description="Visitor ID")
    device: str = Field(UNKNOWN, description="Device class")
    browser: str = Field(UNKNOWN, description="Browser family")
    os: str = Field(UNKNOWN, description="Operating system")
    country: str = Field(UNKNOWN, description="Country")
    city: str = Field(UNKNOWN, description="City")
    region: str = Field(UNKNOWN, description="Region")
    page_views: int = Field(0, ge=0, description="Tracked page views")
    total_time: float = Field(0, ge=0, description="Total seconds tracked")
    first_seen: Optional[datetime] = Field(None, description="First event timestamp")
    last_seen: datetime = Field(..., description="Last event timestamp")


class CountryCount(BaseModel):
    country: str
    views: int


class CityCount(BaseModel):
    city: str
    country: str
    views: int


class DeviceCount(BaseModel):
    device: str
    views: int


class AnalyticsSummary(BaseModel):
    """
    Rollup of views for a content item over a trailing window.

    `bounce_rate` is a fraction in `[0, 1]` and is `0` when there are no views.
    `engagement_score` is in `[0, 100]`.
    """

    content_id: str = Field(..., description="Content ID")
    window_days: int = Field(..., description="Trailing window in days")
    total_views: int = Field(0, description="Number of view records")
    unique_visitors: int = Field(0, description="Distinct visitor IDs")
    avg_time_spent: float = Field(0.0, description="Average seconds per view")
    avg_scroll_depth: float = Field(0.0, description="Average scroll percentage")
    bounce_rate: float = Field(0.0, description="Bounced views / total views")
    engagement_score: float = Field(0.0, description="Weighted engagement score 0-100")
    interaction_counts: Dict[str, int] = Field(default_factory=dict, description="Interactions in window")
    top_countries: List[CountryCount] = Field(default_factory=list, description="Views per country")
    top_cities: List[CityCount] = Field(default_factory=list, description="Views per city and country")
    devices: List[DeviceCount] = Field(default_factory=list, description="Views per visitor session device")
