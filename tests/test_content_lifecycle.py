"""
Tests for the content lifecycle state machine.
"""
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from pastry_publishing.database.governance_indexes import CONTENT_ITEMS_COLLECTION
from pastry_publishing.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
)
from pastry_publishing.models.governance_models import Actor, ContentKind, ContentStatus, CreateContentRequest, Role
from pastry_publishing.services.content_lifecycle import ContentLifecycle

from conftest import BASE_TIME, make_content, make_site

CLOCK = "pastry_publishing.utils.clock.utc_now"


@pytest.fixture
def lifecycle(storage):
    make_site(storage)
    make_site(storage, site_id="site-pending", status="PENDING")
    return ContentLifecycle(storage=storage)


@pytest.mark.asyncio
async def test_publish_sets_published_at(lifecycle, storage, admin):
    """Publishing a never-published draft stamps published_at with now."""
    make_content(storage, status="DRAFT", published_at=None)

    with patch(CLOCK, return_value=BASE_TIME):
        item = await lifecycle.publish(admin, "content-1")

    assert item.status == ContentStatus.PUBLISHED
    assert item.published_at == BASE_TIME


@pytest.mark.asyncio
async def test_editor_cannot_publish_and_nothing_is_written(lifecycle, storage, editor):
    """An unauthorized transition fails with Forbidden and performs no write."""
    make_content(storage, status="DRAFT", published_at=None)
    writes_before = storage.writes

    with pytest.raises(ForbiddenError):
        await lifecycle.publish(editor, "content-1")

    assert storage.writes == writes_before
    assert (await storage.get(CONTENT_ITEMS_COLLECTION, "content-1"))["status"] == "DRAFT"


@pytest.mark.asyncio
async def test_unpublish_then_republish_sets_new_timestamp(lifecycle, storage, admin):
    """DRAFT -> PUBLISHED -> DRAFT clears published_at; publishing again stamps a new time."""
    make_content(storage, status="DRAFT", published_at=None)
    later = BASE_TIME + timedelta(hours=3)

    with patch(CLOCK, return_value=BASE_TIME):
        first = await lifecycle.publish(admin, "content-1")
        draft = await lifecycle.unpublish(admin, "content-1")
    with patch(CLOCK, return_value=later):
        second = await lifecycle.publish(admin, "content-1")

    assert first.published_at == BASE_TIME
    assert draft.status == ContentStatus.DRAFT
    assert draft.published_at is None
    assert second.published_at == later
    assert second.published_at != first.published_at


@pytest.mark.asyncio
async def test_suspend_and_unsuspend_preserve_published_at(lifecycle, storage, editor, admin):
    """Suspension round trip never touches published_at."""
    make_content(storage, published_at=BASE_TIME)

    with patch(CLOCK, return_value=BASE_TIME + timedelta(days=2)):
        suspended = await lifecycle.suspend(editor, "content-1")
        restored = await lifecycle.unsuspend(admin, "content-1")

    assert suspended.status == ContentStatus.SUSPENDED
    assert suspended.published_at == BASE_TIME
    assert restored.status == ContentStatus.PUBLISHED
    assert restored.published_at == BASE_TIME


@pytest.mark.asyncio
async def test_suspended_content_is_hidden_from_its_author(lifecycle, storage, editor):
    make_content(storage, status="SUSPENDED", author_id="editor-1")

    # Suspended content is hidden from the editor, so it surfaces as NotFound
    with pytest.raises(NotFoundError):
        await lifecycle.unsuspend(editor, "content-1")


@pytest.mark.asyncio
async def test_publish_into_inactive_site_fails(lifecycle, storage, admin):
    """Publishing content of a PENDING site is a failed precondition."""
    make_content(storage, site_id="site-pending", status="DRAFT", published_at=None)

    with pytest.raises(PreconditionFailedError):
        await lifecycle.publish(admin, "content-1")

    assert (await storage.get(CONTENT_ITEMS_COLLECTION, "content-1"))["status"] == "DRAFT"


@pytest.mark.asyncio
async def test_archived_is_terminal(lifecycle, storage, admin):
    make_content(storage, status="ARCHIVED")

    with pytest.raises(PreconditionFailedError):
        await lifecycle.publish(admin, "content-1")
    with pytest.raises(PreconditionFailedError):
        await lifecycle.unpublish(admin, "content-1")


@pytest.mark.asyncio
async def test_unlisted_transition_is_rejected(lifecycle, storage, admin):
    """DRAFT -> SUSPENDED is not part of the state machine."""
    make_content(storage, status="DRAFT", published_at=None)

    with pytest.raises(PreconditionFailedError):
        await lifecycle.suspend(admin, "content-1")


@pytest.mark.asyncio
async def test_unknown_target_status_is_invalid_argument(lifecycle, storage, admin):
    """A status outside the enum is rejected before lookup and without a write."""
    make_content(storage, status="DRAFT", published_at=None)
    writes_before = storage.writes

    with pytest.raises(InvalidArgumentError) as exc_info:
        await lifecycle.transition(admin, "content-1", "PUBLISH")

    assert "PUBLISHED" in exc_info.value.details["valid_statuses"]
    assert storage.writes == writes_before
    assert (await storage.get(CONTENT_ITEMS_COLLECTION, "content-1"))["status"] == "DRAFT"

    with pytest.raises(InvalidArgumentError):
        await lifecycle.transition(admin, "missing", "published")


@pytest.mark.asyncio
async def test_transition_accepts_status_string(lifecycle, storage, admin):
    make_content(storage, status="DRAFT", published_at=None)

    item = await lifecycle.transition(admin, "content-1", "PUBLISHED")
    assert item.status == ContentStatus.PUBLISHED


@pytest.mark.asyncio
async def test_foreign_site_owner_cannot_suspend(lifecycle, storage, site_owner):
    """Site owners suspend content of their own sites only."""
    make_content(storage)
    foreign_owner = Actor(id="owner-2", role=Role.SITE_OWNER)

    with pytest.raises(ForbiddenError):
        await lifecycle.suspend(foreign_owner, "content-1")
    assert (await storage.get(CONTENT_ITEMS_COLLECTION, "content-1"))["status"] == "PUBLISHED"

    suspended = await lifecycle.suspend(site_owner, "content-1")
    assert suspended.status == ContentStatus.SUSPENDED


@pytest.mark.asyncio
async def test_transition_to_current_state_is_noop(lifecycle, storage, admin):
    make_content(storage)
    writes_before = storage.writes

    item = await lifecycle.publish(admin, "content-1")

    assert item.status == ContentStatus.PUBLISHED
    assert storage.writes == writes_before


@pytest.mark.asyncio
async def test_hidden_content_is_not_found(lifecycle, storage, other_editor):
    """Another editor's draft is indistinguishable from missing content."""
    make_content(storage, status="DRAFT", published_at=None)

    with pytest.raises(NotFoundError):
        await lifecycle.unpublish(other_editor, "content-1")
    with pytest.raises(NotFoundError):
        await lifecycle.publish(other_editor, "missing")


@pytest.mark.asyncio
async def test_archive_uses_deletion_rules(lifecycle, storage, site_owner):
    """A site owner archives its site posts but not recipes."""
    make_content(storage, content_id="post", slug="post")
    make_content(storage, content_id="recipe", slug="recipe", kind=ContentKind.RECIPE.value)

    archived = await lifecycle.archive(site_owner, "post")
    assert archived.status == ContentStatus.ARCHIVED

    with pytest.raises(ForbiddenError):
        await lifecycle.archive(site_owner, "recipe")


@pytest.mark.asyncio
async def test_concurrent_status_change_is_a_conflict(lifecycle, storage, admin):
    """The write is conditional on the status that was authorized."""
    make_content(storage, status="DRAFT", published_at=None)

    with patch.object(storage, "update", AsyncMock(return_value=None)):
        with pytest.raises(ConflictError):
            await lifecycle.publish(admin, "content-1")


@pytest.mark.asyncio
async def test_create_content_as_editor_starts_as_draft(lifecycle, storage, editor):
    """Editors create drafts; the slug is derived from the title."""
    with patch(CLOCK, return_value=BASE_TIME):
        item = await lifecycle.create_content(
            editor, CreateContentRequest(site_id="site-1", title="Pain au Chocolat!", kind=ContentKind.RECIPE)
        )

    assert item.status == ContentStatus.DRAFT
    assert item.published_at is None
    assert item.slug == "pain-au-chocolat"
    assert item.author_id == "editor-1"
    assert item.site_owner_id == "owner-1"
    assert (await storage.get(CONTENT_ITEMS_COLLECTION, item.content_id))["status"] == "DRAFT"


@pytest.mark.asyncio
async def test_create_content_as_admin_publishes(lifecycle, admin):
    with patch(CLOCK, return_value=BASE_TIME):
        item = await lifecycle.create_content(admin, {"site_id": "site-1", "title": "Brioche"})

    assert item.status == ContentStatus.PUBLISHED
    assert item.published_at == BASE_TIME


@pytest.mark.asyncio
async def test_create_content_on_pending_site_stays_draft(lifecycle, admin, caplog):
    """Admin content on a non-active site is downgraded to DRAFT with a warning."""
    with caplog.at_level(logging.WARNING):
        item = await lifecycle.create_content(admin, {"site_id": "site-pending", "title": "Brioche"})

    assert item.status == ContentStatus.DRAFT
    assert item.published_at is None
    assert "as DRAFT instead of PUBLISHED" in caplog.text
    assert "site-pending" in caplog.text


@pytest.mark.asyncio
async def test_create_content_rejections(lifecycle, storage, viewer, anonymous, editor):
    make_content(storage)

    with pytest.raises(UnauthorizedError):
        await lifecycle.create_content(anonymous, {"site_id": "site-1", "title": "X"})
    with pytest.raises(ForbiddenError):
        await lifecycle.create_content(viewer, {"site_id": "site-1", "title": "X"})
    with pytest.raises(NotFoundError):
        await lifecycle.create_content(editor, {"site_id": "nope", "title": "X"})
    with pytest.raises(ConflictError):
        await lifecycle.create_content(editor, {"site_id": "site-1", "title": "Lemon Tart"})
    with pytest.raises(InvalidArgumentError):
        await lifecycle.create_content(editor, {"site_id": "site-1", "title": ""})


@pytest.mark.asyncio
async def test_update_slug_conflict_writes_nothing(lifecycle, storage, editor):
    """A slug already used on the same site rejects the whole update."""
    make_content(storage, content_id="a", slug="taken")
    make_content(storage, content_id="b", slug="free", status="DRAFT", published_at=None)
    writes_before = storage.writes

    with pytest.raises(ConflictError):
        await lifecycle.update_content(editor, "b", {"slug": "taken", "body": "new body"})

    assert storage.writes == writes_before
    assert (await storage.get(CONTENT_ITEMS_COLLECTION, "b"))["body"] == "Zest, then bake."


@pytest.mark.asyncio
async def test_same_slug_on_another_site_is_allowed(lifecycle, storage, editor):
    make_site(storage, site_id="site-2")
    make_content(storage, content_id="a", slug="shared")
    make_content(storage, content_id="b", site_id="site-2", slug="other", status="DRAFT", published_at=None)

    item = await lifecycle.update_content(editor, "b", {"slug": "shared"})
    assert item.slug == "shared"


@pytest.mark.asyncio
async def test_update_title_regenerates_slug(lifecycle, storage, editor):
    make_content(storage, status="DRAFT", published_at=None)

    item = await lifecycle.update_content(editor, "content-1", {"title": "Meyer Lemon Tart"})

    assert item.title == "Meyer Lemon Tart"
    assert item.slug == "meyer-lemon-tart"


@pytest.mark.asyncio
async def test_update_title_with_null_slug_regenerates_slug(lifecycle, storage, editor):
    make_content(storage, status="DRAFT", published_at=None)

    item = await lifecycle.update_content(editor, "content-1", {"title": "Meyer Lemon Tart", "slug": None})

    assert item.slug == "meyer-lemon-tart"


@pytest.mark.asyncio
async def test_update_with_status_applies_transition(lifecycle, storage, admin):
    """An edit combined with unpublishing clears published_at in the same write."""
    make_content(storage)
    writes_before = storage.writes

    item = await lifecycle.update_content(admin, "content-1", {"body": "Revised", "status": "DRAFT"})

    assert item.body == "Revised"
    assert item.status == ContentStatus.DRAFT
    assert item.published_at is None
    assert storage.writes == writes_before + 1


@pytest.mark.asyncio
async def test_update_by_non_author_is_forbidden(lifecycle, storage, other_editor):
    make_content(storage)

    with pytest.raises(ForbiddenError):
        await lifecycle.update_content(other_editor, "content-1", {"body": "Hijacked"})


@pytest.mark.asyncio
async def test_update_rejects_malformed_input(lifecycle, storage, editor):
    make_content(storage)

    with pytest.raises(InvalidArgumentError):
        await lifecycle.update_content(editor, "content-1", {"slug": "Not A Slug"})
