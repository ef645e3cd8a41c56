"""
# Policy Engine

This module implements the **role-based content policy** for the publishing platform as a set of pure
predicate functions. Every content mutation and every visibility decision in the services goes through
one of these predicates before anything is read back to the caller or written to storage.

## Design

- **Pure**: No I/O, no clock, no global state. Inputs are an `Actor`, optionally a `ContentItem`.
- **Total**: A `None` actor or an anonymous actor never raises; it yields `False` everywhere except
  viewing `PUBLISHED` content.
- **Two dimensions**: Role tier is the authority; ownership (author or site owner) is combined with it.

## Tiers

```
ANONYMOUS < VISITOR < VIEWER < EDITOR < SITE_OWNER < ADMIN < SUPER_USER < PLATFORM_ADMIN
```

| Tier | Roles |
|------|-------|
| **Global top tier** | ADMIN, SUPER_USER, PLATFORM_ADMIN |
| **Top tier on a resource** | global top tier, or SITE_OWNER of the resource's site |
| **Moderator** | EDITOR, or top tier on the resource (suspension, comment moderation) |
| **Trusted** | EDITOR and above (analytics) |
| **Interactive** | VIEWER and above (likes, comments) |

## Capability Matrix

| Predicate | Granted to |
|-----------|------------|
| `can_create_content` | EDITOR, SITE_OWNER, global top tier |
| `can_edit_content` | top tier on the item, or its author while DRAFT, or its author with EDITOR role |
| `can_delete_recipe` | global top tier only |
| `can_delete_site_post` | global top tier, or owner of the item's site |
| `can_publish` / `can_unsuspend` | top tier |
| `can_suspend` / `can_moderate_comments` | moderator |
| `can_view_content` | PUBLISHED: everyone; DRAFT: top tier or author; SUSPENDED/ARCHIVED: top tier |
| `can_interact` | interactive (VISITOR must self-upgrade first) |

Recipe and site-post deletion are deliberately separate predicates: `can_delete_content` dispatches on
the item kind and never merges the two rules.

## Usage Example

```python
from pastry_publishing.services import policy_engine

if not policy_engine.can_publish(actor, item):
    raise ForbiddenError("Publishing requires administrator privileges")
```
"""

from typing import List, Optional

from pastry_publishing.models.governance_models import (
    GLOBAL_TOP_TIER_ROLES,
    ROLE_TIERS,
    Actor,
    ContentItem,
    ContentKind,
    ContentStatus,
    Role,
)

# Self-service upgrades: current role -> roles it may upgrade itself to
SELF_UPGRADE_PATHS = {
    Role.VISITOR: [Role.VIEWER],
    Role.VIEWER: [Role.EDITOR],
}


def _authenticated(actor: Optional[Actor]) -> bool:
    return actor is not None and not actor.is_anonymous


def _tier(actor: Optional[Actor]) -> int:
    if not _authenticated(actor):
        return ROLE_TIERS[Role.ANONYMOUS]
    return ROLE_TIERS[actor.role]


def is_global_top_tier(actor: Optional[Actor]) -> bool:
    """True for authenticated ADMIN, SUPER_USER and PLATFORM_ADMIN actors."""
    return _authenticated(actor) and actor.role in GLOBAL_TOP_TIER_ROLES


def owns_site_of(actor: Optional[Actor], item: Optional[ContentItem]) -> bool:
    """True when the actor owns the site that the item belongs to."""
    return (
        _authenticated(actor)
        and item is not None
        and item.site_owner_id is not None
        and item.site_owner_id == actor.id
    )


def is_author_of(actor: Optional[Actor], item: Optional[ContentItem]) -> bool:
    return _authenticated(actor) and item is not None and item.author_id == actor.id


def is_top_tier(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    """
    True for the global top tier, and for a SITE_OWNER acting on content of a site it owns.

    Without an `item` only the global top tier qualifies.
    """
    if is_global_top_tier(actor):
        return True
    return _authenticated(actor) and actor.role == Role.SITE_OWNER and owns_site_of(actor, item)


def is_trusted(actor: Optional[Actor]) -> bool:
    """EDITOR and above."""
    return _tier(actor) >= ROLE_TIERS[Role.EDITOR]


def is_moderator(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    """
    EDITOR, or top tier on the item.

    A SITE_OWNER moderates only content of its own sites, never other tenants.
    """
    return (_authenticated(actor) and actor.role == Role.EDITOR) or is_top_tier(actor, item)


def can_create_content(actor: Optional[Actor]) -> bool:
    if is_global_top_tier(actor):
        return True
    return _authenticated(actor) and actor.role in (Role.EDITOR, Role.SITE_OWNER)


def can_edit_content(actor: Optional[Actor], item: ContentItem) -> bool:
    """
    Top tier may edit anything on their sites. Authors may edit their own drafts, and authors holding
    the EDITOR role may keep editing their own content after publication.
    """
    if is_top_tier(actor, item):
        return True
    if is_author_of(actor, item):
        return item.status == ContentStatus.DRAFT or actor.role == Role.EDITOR
    return False


def can_delete_recipe(actor: Optional[Actor]) -> bool:
    """Recipes may only be deleted by the global top tier."""
    return is_global_top_tier(actor)


def can_delete_site_post(actor: Optional[Actor], item: ContentItem) -> bool:
    """Site posts may be deleted by the global top tier or the owner of the post's site."""
    return is_global_top_tier(actor) or owns_site_of(actor, item)


def can_delete_content(actor: Optional[Actor], item: ContentItem) -> bool:
    """Dispatch to the deletion rule for the item's kind."""
    if item.kind == ContentKind.RECIPE:
        return can_delete_recipe(actor)
    return can_delete_site_post(actor, item)


def can_publish(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    return is_top_tier(actor, item)


def can_suspend(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    return is_moderator(actor, item)


def can_unsuspend(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    return is_top_tier(actor, item)


def can_view_content(actor: Optional[Actor], item: ContentItem) -> bool:
    """
    Decide whether an actor may see an item.

    Visibility is monotonic in role tier: anything a lower tier can see, a higher tier can see.
    """
    if item.status == ContentStatus.PUBLISHED:
        return True
    if not _authenticated(actor):
        return False
    if is_top_tier(actor, item):
        return True
    if item.status == ContentStatus.DRAFT:
        return is_author_of(actor, item)
    return False


def can_interact(actor: Optional[Actor]) -> bool:
    """Likes, saves and comments require a verified account (VIEWER or above)."""
    return _tier(actor) >= ROLE_TIERS[Role.VIEWER]


def can_moderate_comments(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    return is_moderator(actor, item)


def can_auto_approve_comments(actor: Optional[Actor], item: Optional[ContentItem] = None) -> bool:
    return is_top_tier(actor, item)


def can_view_analytics(actor: Optional[Actor]) -> bool:
    return is_trusted(actor)


def can_view_all_analytics(actor: Optional[Actor]) -> bool:
    return is_global_top_tier(actor)


def default_status_for(actor: Optional[Actor], item: Optional[ContentItem] = None) -> ContentStatus:
    """Top tier creators publish directly; everyone else starts from DRAFT pending review."""
    if is_top_tier(actor, item):
        return ContentStatus.PUBLISHED
    return ContentStatus.DRAFT


def available_statuses_for(actor: Optional[Actor], item: Optional[ContentItem] = None) -> List[ContentStatus]:
    """Statuses an actor may set directly, in lifecycle order."""
    if is_top_tier(actor, item):
        return [ContentStatus.DRAFT, ContentStatus.PUBLISHED, ContentStatus.SUSPENDED, ContentStatus.ARCHIVED]
    if is_moderator(actor, item):
        return [ContentStatus.DRAFT, ContentStatus.SUSPENDED]
    return []


def can_self_upgrade(actor: Optional[Actor], target_role: Role) -> bool:
    """VISITOR may upgrade to VIEWER, and VIEWER to EDITOR, without administrator action."""
    if not _authenticated(actor):
        return False
    return target_role in SELF_UPGRADE_PATHS.get(actor.role, [])
