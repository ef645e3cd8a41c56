"""
# Enrichment Service

Resolves a request fingerprint (IP address and user agent) into location and device details through an
external enrichment service. Enrichment is **best-effort**: `safe_enrich` never raises and falls back to
a tuple of `"unknown"` values, so analytics ingestion keeps working when the service is slow or down.

## Wire Contract

```
POST {ENRICHMENT_URL}/enrich
{"ip": "203.0.113.7", "user_agent": "Mozilla/5.0 ..."}

200 OK
{"country": "FR", "city": "Lyon", "region": "ARA", "device": "mobile", "browser": "Safari", "os": "iOS"}
```

Missing or null fields in the response are reported as `"unknown"`.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from pastry_publishing.config import settings
from pastry_publishing.managers.logging_manager import get_logger
from pastry_publishing.models.analytics_models import EnrichmentResult

logger = get_logger(prefix="[Enrichment]")


class Enrichment(ABC):
    """Resolves a request fingerprint into location and device details."""

    @abstractmethod
    async def enrich(self, ip_address: Optional[str], user_agent: Optional[str]) -> EnrichmentResult:
        """Return enrichment for a fingerprint. May raise; callers go through `safe_enrich`."""


class NullEnrichment(Enrichment):
    """Used when no enrichment service is configured."""

    async def enrich(self, ip_address: Optional[str], user_agent: Optional[str]) -> EnrichmentResult:
        return EnrichmentResult()


class HttpEnrichmentClient(Enrichment):
    """
    Enrichment over HTTP.

    Args:
        base_url (str): Service root, e.g. `https://enrich.internal`.
        timeout (float): Request timeout in seconds.
        api_key (Optional[str]): Sent as `X-API-Key` when set.
        transport (Optional[httpx.AsyncBaseTransport]): Custom transport (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self.transport = transport

    async def enrich(self, ip_address: Optional[str], user_agent: Optional[str]) -> EnrichmentResult:
        headers = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/enrich",
                json={"ip": ip_address, "user_agent": user_agent},
                headers=headers,
            )
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, dict):
            raise ValueError(f"Enrichment response must be a JSON object, got {type(payload).__name__}")

        fields = {key: str(value) for key, value in payload.items() if key in EnrichmentResult.model_fields and value}
        return EnrichmentResult(**fields)


async def safe_enrich(
    enrichment: Enrichment, ip_address: Optional[str], user_agent: Optional[str]
) -> EnrichmentResult:
    """Enrich a fingerprint, falling back to unknown values on any service failure."""
    try:
        return await enrichment.enrich(ip_address, user_agent)
    except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, ValueError) as e:
        logger.warning("Enrichment failed, using unknown values: %s", e)
        return EnrichmentResult()


def get_enrichment() -> Enrichment:
    """Build the enrichment collaborator from settings."""
    if not settings.enrichment_enabled:
        return NullEnrichment()
    api_key = settings.ENRICHMENT_API_KEY.get_secret_value() if settings.ENRICHMENT_API_KEY else None
    return HttpEnrichmentClient(settings.ENRICHMENT_URL, timeout=settings.ENRICHMENT_TIMEOUT_SECONDS, api_key=api_key)
