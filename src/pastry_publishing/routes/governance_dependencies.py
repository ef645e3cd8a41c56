"""
# Governance Boundary Helpers

Glue between FastAPI route handlers and the governance services. Routes authenticate a user through
the platform's auth dependency, turn it into an `Actor` here, call a service, and map any
`GovernanceError` back onto an HTTP response.

## Key Features

### 1. Actor Resolution
`resolve_actor()` turns the user document produced by authentication (or `None`) into an `Actor`.
Unrecognized role strings resolve to `VISITOR`, the least privileged authenticated role.

### 2. Error Mapping
`to_http_exception()` and `governance_exception_handler()` map the error taxonomy to status codes:

| Error | Status |
|-------|--------|
| Unauthorized | 401 |
| Forbidden | 403 |
| NotFound | 404 |
| InvalidArgument | 400 |
| Conflict | 409 |
| PreconditionFailed | 412 |
| Unavailable | 503 |
| DeadlineExceeded | 504 |

### 3. Fire-and-Forget Analytics
`schedule_view_tracking()` extracts the request fingerprint and hands the event to the analytics
aggregator in the background; the response is never delayed or failed by it.

## Usage Example

```python
@router.post("/content/{content_id}/interactions")
async def interact(content_id: str, body: InteractionBody, current_user: dict = Depends(get_current_user)):
    actor = resolve_actor(current_user)
    try:
        return await interaction_ledger.interact(actor, content_id, body.type, body.value)
    except GovernanceError as e:
        raise to_http_exception(e)
```
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from pastry_publishing.errors import ForbiddenError, GovernanceError, UnauthorizedError
from pastry_publishing.managers.logging_manager import get_logger
from pastry_publishing.models.governance_models import Actor, Role
from pastry_publishing.services import policy_engine
from pastry_publishing.services.analytics_aggregator import AnalyticsAggregator, analytics_aggregator

logger = get_logger(prefix="[GovernanceBoundary]")


def resolve_actor(user: Optional[Dict[str, Any]]) -> Actor:
    """
    Build an `Actor` from an authenticated user document, or an anonymous actor for `None`.

    The id is read from `_id`, `id` or `user_id`; the role from `role` (case-insensitive).
    """
    if not user:
        return Actor.anonymous()

    user_id = user.get("_id") or user.get("id") or user.get("user_id")
    if not user_id:
        return Actor.anonymous()

    raw_role = str(user.get("role") or "").upper()
    try:
        role = Role(raw_role)
    except ValueError:
        logger.debug("Unrecognized role %r for user %s, treating as VISITOR", raw_role, user_id)
        role = Role.VISITOR

    email = user.get("email") or None
    try:
        return Actor(id=str(user_id), role=role, email=email)
    except ValueError:
        # Malformed stored email must not lock the user out
        return Actor(id=str(user_id), role=role)


def to_http_exception(exc: GovernanceError) -> HTTPException:
    """Map a governance error to an `HTTPException` carrying its taxonomy kind."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict(), headers=headers)


async def governance_exception_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    """
    Exception handler for `app.add_exception_handler(GovernanceError, governance_exception_handler)`.
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def require_analytics_access(actor: Optional[Actor], all_content: bool = False) -> Actor:
    """
    Gate analytics reports: EDITOR and above for single content, global top tier for platform-wide reports.
    """
    if actor is None or actor.is_anonymous:
        raise UnauthorizedError()
    allowed = policy_engine.can_view_all_analytics(actor) if all_content else policy_engine.can_view_analytics(actor)
    if not allowed:
        raise ForbiddenError("Analytics access denied")
    return actor


def client_fingerprint(request: Request) -> Dict[str, Optional[str]]:
    """IP address, user agent and referrer of a request; the first `X-Forwarded-For` hop wins."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.headers.get("x-real-ip") or (request.client.host if request.client else None)
    return {
        "ip_address": ip_address,
        "user_agent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
    }


def schedule_view_tracking(
    request: Request,
    content_id: str,
    visitor_id: str,
    time_spent: float = 0,
    scroll_depth: float = 0,
    bounced: Optional[bool] = None,
    provisional: bool = False,
    aggregator: Optional[AnalyticsAggregator] = None,
):
    """Track a view in the background; returns the scheduled task."""
    aggregator = aggregator or analytics_aggregator
    return aggregator.track_view_in_background(
        content_id=content_id,
        visitor_id=visitor_id,
        time_spent=time_spent,
        scroll_depth=scroll_depth,
        bounced=bounced,
        provisional=provisional,
        **client_fingerprint(request),
    )
