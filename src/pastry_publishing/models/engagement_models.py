"""
# Engagement Models

Data structures for **visitor interactions** (likes, shares, saves...) and **threaded comments**.

## Interactions

Every interaction is keyed by `(visitor_id, content_id, type)`; at most one record exists per key.
`like` and `dislike` are **toggle** types and are mutually exclusive for a visitor on a piece of content.
All other types are recorded by upsert (last write wins on `value`).

## Comments

Comments form threads one level deep: a reply references a top-level comment on the same content.
Comments carry an `approved` flag fixed at submission time; moderators approve or reject pending ones.

**Sanitization:**
*   **name**: All HTML stripped.
*   **content**: Limited to basic inline formatting tags.

## Module Attributes

Attributes:
    TOGGLE_TYPES (FrozenSet[InteractionType]): Mutually exclusive toggle types.
    OPPOSITE_TOGGLE (Dict[InteractionType, InteractionType]): Opposite of each toggle type.
    COMMENT_ALLOWED_TAGS (List[str]): HTML tags kept in comment bodies.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from pastry_publishing.config import settings


class InteractionType(str, Enum):
    """Enumeration of built-in interaction types.

    Attributes:
        LIKE: Toggle; excludes DISLIKE.
        DISLIKE: Toggle; excludes LIKE.
        SHARE: Content shared.
        PRINT: Content printed.
        SAVE: Content saved to a collection.
        COPY_INGREDIENTS: Ingredient list copied.
        COPY_URL: Content URL copied.
    """

    LIKE = "like"
    DISLIKE = "dislike"
    SHARE = "share"
    PRINT = "print"
    SAVE = "save"
    COPY_INGREDIENTS = "copy_ingredients"
    COPY_URL = "copy_url"


TOGGLE_TYPES: FrozenSet[InteractionType] = frozenset({InteractionType.LIKE, InteractionType.DISLIKE})
OPPOSITE_TOGGLE: Dict[InteractionType, InteractionType] = {
    InteractionType.LIKE: InteractionType.DISLIKE,
    InteractionType.DISLIKE: InteractionType.LIKE,
}
COMMENT_ALLOWED_TAGS: List[str] = ["p", "br", "strong", "em", "code", "a"]


class InteractionAction(str, Enum):
    """Outcome of an interaction request."""

    ADDED = "added"
    REMOVED = "removed"
    RECORDED = "recorded"


class InteractionRecord(BaseModel):
    """
    A single interaction by a visitor on a content item.

    `type` is stored as a plain string so configured custom types round-trip unchanged.
    """

    visitor_id: str = Field(..., description="Visitor (user) ID")
    content_id: str = Field(..., description="Content ID")
    type: str = Field(..., description="Interaction type")
    value: Optional[str] = Field(None, description="Optional payload (e.g. share target)")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class ToggleResult(BaseModel):
    """Result of a toggle, record or dispatched interaction."""

    action: InteractionAction = Field(..., description="What happened")
    record: Optional[InteractionRecord] = Field(None, description="Record present after the call")


class InteractionCounts(BaseModel):
    """Per-type interaction counts for a content item; every known type is present."""

    content_id: str = Field(..., description="Content ID")
    counts: Dict[str, int] = Field(default_factory=dict, description="Count per interaction type")


class Comment(BaseModel):
    """
    A comment or reply on a content item.

    Attributes:
        comment_id (str): Unique identifier.
        content_id (str): Content the comment belongs to.
        visitor_id (str): Submitting user.
        name (str): Display name.
        email (Optional[str]): Contact email, never shown publicly.
        content (str): Sanitized body.
        parent_id (Optional[str]): Top-level comment this replies to.
        rating (Optional[int]): Optional 1-5 rating.
        approved (bool): Whether the comment is publicly visible.
        created_at (datetime): Submission time.
    """

    comment_id: str = Field(..., description="Unique comment identifier")
    content_id: str = Field(..., description="Content ID")
    visitor_id: str = Field(..., description="Submitting user ID")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(None, description="Contact email")
    content: str = Field(..., description="Sanitized comment body")
    parent_id: Optional[str] = Field(None, description="Parent comment ID")
    rating: Optional[int] = Field(None, ge=1, le=5, description="Rating 1-5")
    approved: bool = Field(False, description="Approval state")
    created_at: datetime = Field(..., description="Submission timestamp")


class CreateCommentRequest(BaseModel):
    """
    Request model for submitting a comment.

    **Sanitization:**
    *   **name**: All HTML stripped.
    *   **content**: Limited to basic formatting tags (`<strong>`, `<em>`, `<a>`, etc.) and to
        `COMMENT_MAX_LENGTH` characters after cleaning.
    """

    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    content: str = Field(..., min_length=1, description="Comment body")
    email: Optional[EmailStr] = Field(None, description="Contact email")
    parent_id: Optional[str] = Field(None, description="Parent comment ID for replies")
    rating: Optional[int] = Field(None, ge=1, le=5, description="Rating 1-5")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        import bleach

        cleaned = bleach.clean(v, tags=[], strip=True).strip()
        if not cleaned:
            raise ValueError("Name cannot be empty")
        if len(cleaned) > settings.COMMENT_NAME_MAX_LENGTH:
            raise ValueError(f"Name must be at most {settings.COMMENT_NAME_MAX_LENGTH} characters")
        return cleaned

    @field_validator("content")
    @classmethod
    def validate_content(cls, v):
        import bleach

        cleaned = bleach.clean(v, tags=COMMENT_ALLOWED_TAGS, strip=True).strip()
        if not cleaned:
            raise ValueError("Comment cannot be empty")
        if len(cleaned) > settings.COMMENT_MAX_LENGTH:
            raise ValueError(f"Comment must be at most {settings.COMMENT_MAX_LENGTH} characters")
        return cleaned


class CommentThread(BaseModel):
    """A top-level comment with its replies in chronological order."""

    comment: Comment
    replies: List[Comment] = Field(default_factory=list)


class CommentStats(BaseModel):
    """Comment statistics for a content item."""

    content_id: str = Field(..., description="Content ID")
    approved_count: int = Field(0, description="Number of approved comments")
    pending_count: int = Field(0, description="Number of pending comments (moderators only)")
    average_rating: Optional[float] = Field(None, description="Average approved rating, one decimal")
    rating_count: int = Field(0, description="Number of approved comments with a rating")
