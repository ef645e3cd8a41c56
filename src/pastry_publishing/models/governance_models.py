"""
# Governance Models

This module defines the **actors, sites and content items** that the governance core reasons about.
Recipes and blog posts are modeled uniformly as `ContentItem` so that one permission policy and one
lifecycle state machine cover both.

## Domain Model Overview

- **Actor**: The authenticated (or anonymous) entity performing an operation. `role` is the sole
  authority dimension; ownership is combined with it by the policy engine.
- **Site**: A tenant that owns content. Only `ACTIVE` sites accept newly published content.
- **ContentItem**: A recipe or blog post moving through the `draft → published → suspended/archived`
  lifecycle, with publish-timestamp semantics enforced by `ContentLifecycle`.

## Role Tiers

Roles are ordered from least to most privileged:

```
ANONYMOUS < VISITOR < VIEWER < EDITOR < SITE_OWNER < ADMIN < SUPER_USER < PLATFORM_ADMIN
```

`ADMIN`, `SUPER_USER` and `PLATFORM_ADMIN` form the global top tier. `SITE_OWNER` reaches the top tier
only for content on a site it owns.

## Usage Examples

```python
actor = Actor(id="user_1", role=Role.EDITOR, email="ed@example.com")
request = CreateContentRequest(site_id="site_1", kind=ContentKind.RECIPE, title="Croissants")
```

## Module Attributes

Attributes:
    ROLE_TIERS (Dict[Role, int]): Rank of each role, used for tier comparisons.
    GLOBAL_TOP_TIER_ROLES (FrozenSet[Role]): Roles that are top tier on every site.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class Role(str, Enum):
    """Enumeration of actor roles, least privileged first.

    Attributes:
        ANONYMOUS: Unauthenticated caller.
        VISITOR: Registered but unverified account; may read, may not interact.
        VIEWER: Verified reader; may interact and comment.
        EDITOR: Author-capable role; may create content and suspend for moderation.
        SITE_OWNER: Owner of one or more sites; top tier on its own sites.
        ADMIN: Platform administrator.
        SUPER_USER: Elevated administrator.
        PLATFORM_ADMIN: Highest platform authority.
    """

    ANONYMOUS = "ANONYMOUS"
    VISITOR = "VISITOR"
    VIEWER = "VIEWER"
    EDITOR = "EDITOR"
    SITE_OWNER = "SITE_OWNER"
    ADMIN = "ADMIN"
    SUPER_USER = "SUPER_USER"
    PLATFORM_ADMIN = "PLATFORM_ADMIN"


ROLE_TIERS: Dict[Role, int] = {role: index for index, role in enumerate(Role)}
GLOBAL_TOP_TIER_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SUPER_USER, Role.PLATFORM_ADMIN})


class ContentStatus(str, Enum):
    """Enumeration of content lifecycle states.

    Attributes:
        DRAFT: Work in progress, visible to its author and the top tier.
        PUBLISHED: Publicly visible.
        SUSPENDED: Hidden by moderation, visible to the top tier only.
        ARCHIVED: Soft-deleted; terminal.
    """

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    SUSPENDED = "SUSPENDED"
    ARCHIVED = "ARCHIVED"


class ContentKind(str, Enum):
    """Kind of content item. Deletion rules differ per kind."""

    RECIPE = "recipe"
    BLOG_POST = "blog_post"


class SiteStatus(str, Enum):
    """Enumeration of site states.

    Attributes:
        PENDING: Site awaiting activation.
        ACTIVE: Site accepting published content.
        SUSPENDED: Site disabled by the platform.
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class Actor(BaseModel):
    """
    The entity performing an operation.

    An actor without an `id` is always treated as anonymous regardless of the role it claims.

    Attributes:
        id (Optional[str]): Account identifier, `None` for anonymous callers.
        role (Role): Authority of the actor.
        email (Optional[EmailStr]): Account email when known.
    """

    id: Optional[str] = Field(None, description="Account identifier")
    role: Role = Field(Role.ANONYMOUS, description="Actor role")
    email: Optional[EmailStr] = Field(None, description="Account email")

    @property
    def is_anonymous(self) -> bool:
        return not self.id or self.role == Role.ANONYMOUS

    @classmethod
    def anonymous(cls) -> "Actor":
        return cls(id=None, role=Role.ANONYMOUS)


class Site(BaseModel):
    """A tenant that owns content items."""

    site_id: str = Field(..., description="Unique site identifier")
    owner_id: str = Field(..., description="User ID of the site owner")
    name: str = Field("", description="Display name")
    status: SiteStatus = Field(SiteStatus.ACTIVE, description="Site status")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")


class ContentItem(BaseModel):
    """
    A recipe or blog post governed by the lifecycle state machine.

    **Publish timestamp invariant:**
    `published_at` is set once the item first enters `PUBLISHED`, survives suspension, and is cleared
    when the item reverts to `DRAFT`.

    Attributes:
        content_id (str): Unique identifier.
        kind (ContentKind): Recipe or blog post.
        site_id (str): Owning site.
        site_owner_id (Optional[str]): Owner of the owning site, denormalized for policy checks.
        author_id (str): Author; owns the item for mutation purposes.
        title (str): Title.
        slug (str): URL slug, unique within the site.
        body (str): Content body.
        status (ContentStatus): Lifecycle state.
        published_at (Optional[datetime]): First publish time of the current publication.
        scheduled_at (Optional[datetime]): Requested future publish time.
        comments_allowed (bool): Whether new comments are accepted.
    """

    content_id: str = Field(..., description="Unique content identifier")
    kind: ContentKind = Field(ContentKind.BLOG_POST, description="Content kind")
    site_id: str = Field(..., description="Owning site ID")
    site_owner_id: Optional[str] = Field(None, description="Owner of the owning site")
    author_id: str = Field(..., description="Author user ID")
    title: str = Field("", description="Title")
    slug: str = Field(..., description="URL slug, unique per site")
    body: str = Field("", description="Content body")
    status: ContentStatus = Field(ContentStatus.DRAFT, description="Lifecycle status")
    published_at: Optional[datetime] = Field(None, description="Publish timestamp")
    scheduled_at: Optional[datetime] = Field(None, description="Scheduled publish timestamp")
    comments_allowed: bool = Field(True, description="Whether comments are accepted")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


def slugify(text: str) -> str:
    """Derive a URL slug from free text (lowercase, hyphen-separated alphanumerics)."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug


def _validate_slug(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().lower()
    if not SLUG_PATTERN.match(v):
        raise ValueError("Slug must contain only lowercase letters, numbers, and single hyphens")
    return v


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    import bleach

    cleaned = bleach.clean(v, tags=[], strip=True).strip()
    if not cleaned:
        raise ValueError("Title cannot be empty")
    return cleaned


class CreateContentRequest(BaseModel):
    """
    Request model for creating a content item.

    **Sanitization:**
    *   **title**: All HTML stripped.
    *   **slug**: Optional; derived from the title when omitted.
    """

    site_id: str = Field(..., min_length=1, description="Owning site ID")
    kind: ContentKind = Field(ContentKind.BLOG_POST, description="Content kind")
    title: str = Field(..., min_length=1, max_length=200, description="Title")
    slug: Optional[str] = Field(None, max_length=200, description="URL slug")
    body: str = Field("", description="Content body")
    comments_allowed: bool = Field(True, description="Whether comments are accepted")
    scheduled_at: Optional[datetime] = Field(None, description="Scheduled publish timestamp")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return _clean_title(v)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _validate_slug(v)


class ContentUpdateRequest(BaseModel):
    """
    Request model for updating a content item.

    Only fields that are set are applied. A `status` change goes through the lifecycle state machine;
    a `slug` change is re-checked for uniqueness within the site before anything is written.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200, description="Title")
    slug: Optional[str] = Field(None, max_length=200, description="URL slug")
    body: Optional[str] = Field(None, description="Content body")
    comments_allowed: Optional[bool] = Field(None, description="Whether comments are accepted")
    scheduled_at: Optional[datetime] = Field(None, description="Scheduled publish timestamp")
    status: Optional[ContentStatus] = Field(None, description="Target lifecycle status")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return _clean_title(v)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _validate_slug(v)
