"""Repository layer tests for Paperbag backend.

Tests focus on the logic beyond plain CRUD:
- Oldest record wins for a shared storage reference
- Newest-first pagination with a created_at cursor
- Conditional status updates (compare-and-swap)
- Bulk reset of orphaned processing records
"""

import pytest

from paperbag.models.image import ImageRecord, ImageStatus, InvalidStateTransition


@pytest.mark.asyncio
async def test_get_by_storage_id_returns_oldest(uow_factory, make_image):
    first = await make_image(original_storage_id="shared", created_at=1_000)
    await make_image(original_storage_id="shared", created_at=2_000)

    async with await uow_factory() as uow:
        found = await uow.images.get_by_storage_id("shared")
        missing = await uow.images.get_by_storage_id("nope")

    assert found is not None
    assert found.id == first.id
    assert missing is None


@pytest.mark.asyncio
async def test_list_by_user_newest_first_with_cursor(uow_factory, make_image):
    for i in range(5):
        await make_image(original_storage_id=f"s-{i}", created_at=1_000 + i)
    await make_image(user_id="user-2", original_storage_id="other", created_at=5_000)

    async with await uow_factory() as uow:
        first_page = await uow.images.list_by_user("user-1", limit=2)
        second_page = await uow.images.list_by_user(
            "user-1", limit=2, cursor=first_page[-1].created_at
        )

    assert [i.created_at for i in first_page] == [1_004, 1_003]
    assert [i.created_at for i in second_page] == [1_002, 1_001]


@pytest.mark.asyncio
async def test_claim_for_processing_moves_pending_to_processing(uow_factory, make_image):
    image = await make_image(updated_at=1)

    async with await uow_factory() as uow:
        record = await uow.images.get_by_id(image.id)
        claimed = await uow.images.claim_for_processing(record, "anime")

    assert claimed
    async with await uow_factory() as uow:
        record = await uow.images.get_by_id(image.id)
    assert record.status == ImageStatus.PROCESSING
    assert record.style == "anime"
    assert record.updated_at > 1


@pytest.mark.asyncio
async def test_claim_loses_when_status_changed_underneath(uow_factory, make_image):
    """A stale read must not claim an image another request already claimed."""
    image = await make_image()

    async with await uow_factory() as uow:
        stale = await uow.images.get_by_id(image.id)

    async with await uow_factory() as uow:
        fresh = await uow.images.get_by_id(image.id)
        assert await uow.images.claim_for_processing(fresh, "anime")

    async with await uow_factory() as uow:
        uow.session.add(stale)
        claimed = await uow.images.claim_for_processing(stale, "disney")
        assert not claimed
        assert stale.status == ImageStatus.PROCESSING
        assert stale.style == "anime"


@pytest.mark.asyncio
async def test_claim_rejects_transformed_image(uow_factory, make_image):
    image = await make_image(
        status=ImageStatus.COMPLETED, cartoon_image_url="https://cdn.test/done.png"
    )

    async with await uow_factory() as uow:
        record = await uow.images.get_by_id(image.id)
        with pytest.raises(InvalidStateTransition):
            await uow.images.claim_for_processing(record, "anime")


@pytest.mark.asyncio
async def test_release_to_pending_only_from_processing(uow_factory, make_image):
    processing = await make_image(original_storage_id="a", status=ImageStatus.PROCESSING)
    failed = await make_image(original_storage_id="b", status=ImageStatus.FAILED)

    async with await uow_factory() as uow:
        released = await uow.images.release_to_pending(await uow.images.get_by_id(processing.id))
        not_released = await uow.images.release_to_pending(await uow.images.get_by_id(failed.id))

    assert released
    assert not not_released

    async with await uow_factory() as uow:
        assert (await uow.images.get_by_id(processing.id)).status == ImageStatus.PENDING
        assert (await uow.images.get_by_id(failed.id)).status == ImageStatus.FAILED


@pytest.mark.asyncio
async def test_reset_processing_to_pending_counts_rows(uow_factory, make_image):
    await make_image(original_storage_id="a", status=ImageStatus.PROCESSING)
    await make_image(original_storage_id="b", status=ImageStatus.PROCESSING)
    await make_image(original_storage_id="c", status=ImageStatus.COMPLETED)

    async with await uow_factory() as uow:
        assert await uow.images.count_by_status(ImageStatus.PROCESSING) == 2
        reset = await uow.images.reset_processing_to_pending()

    assert reset == 2
    async with await uow_factory() as uow:
        assert await uow.images.count_by_status(ImageStatus.PROCESSING) == 0
        assert await uow.images.count_by_status(ImageStatus.PENDING) == 2


@pytest.mark.asyncio
async def test_add_assigns_id(uow_factory):
    async with await uow_factory() as uow:
        image = await uow.images.add(ImageRecord(user_id="user-1", original_storage_id="s"))
        assert image.id is not None
        assert await uow.images.get_by_id(image.id) is image


@pytest.mark.asyncio
async def test_get_by_status_oldest_first(uow_factory, make_image):
    await make_image(original_storage_id="new", status=ImageStatus.PROCESSING, created_at=2_000)
    await make_image(original_storage_id="old", status=ImageStatus.PROCESSING, created_at=1_000)
    await make_image(original_storage_id="idle", created_at=500)

    async with await uow_factory() as uow:
        images = await uow.images.get_by_status(ImageStatus.PROCESSING)

    assert [i.original_storage_id for i in images] == ["old", "new"]
