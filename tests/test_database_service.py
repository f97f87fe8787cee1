import asyncio

import pytest

from wiki.core.errors import NotFound, StorageError


@pytest.mark.asyncio
async def test_crud_operations(runtime):
    """Create, fetch, update, list and delete a page through the proxy"""
    db = runtime.proxy

    await db.create_page("Test", "Some content")

    page = await db.fetch_page("Test")
    assert page.found
    assert page.id is not None
    assert page.raw_content == "Some content"

    await db.save_page(page.id, "Yo!")
    assert await db.fetch_all_pages() == ["Test"]

    updated = await db.fetch_page("Test")
    assert updated.raw_content == "Yo!"

    before = await db.fetch_all_pages_data()
    await db.delete_page(page.id)
    after = await db.fetch_all_pages_data()

    assert len(after) == len(before) - 1
    assert all(p.id != page.id for p in after)
    assert await db.fetch_all_pages() == []


@pytest.mark.asyncio
async def test_fetch_missing_page_is_not_an_error(runtime):
    page = await runtime.proxy.fetch_page("Nowhere")
    assert page.found is False
    assert page.id is None
    assert page.raw_content is None


@pytest.mark.asyncio
async def test_fetch_page_by_id(runtime):
    db = runtime.proxy
    await db.create_page("Home", "# Welcome")
    page_id = (await db.fetch_page("Home")).id

    page = await db.fetch_page_by_id(page_id)
    assert page.found
    assert page.name == "Home"
    assert page.content == "# Welcome"

    missing = await db.fetch_page_by_id(page_id + 1000)
    assert missing.found is False


@pytest.mark.asyncio
async def test_content_round_trips(runtime):
    """Markdown comes back exactly as it was stored"""
    db = runtime.proxy
    contents = {
        "Unicode": "Grüße, 世界 ✓",
        "Markdown": "# Title\n\n* one\n* two\n\n```\ncode\n```\n",
        "Empty": "",
        "Quotes": "it's \"quoted\"; drop table Pages;--",
    }
    for name, content in contents.items():
        await db.create_page(name, content)

    for name, content in contents.items():
        page = await db.fetch_page(name)
        assert page.found
        assert page.raw_content == content


@pytest.mark.asyncio
async def test_page_names_are_sorted(runtime):
    db = runtime.proxy
    for name in ["Zebra", "Apple", "Mango"]:
        await db.create_page(name, "content")

    assert await db.fetch_all_pages() == ["Apple", "Mango", "Zebra"]


@pytest.mark.asyncio
async def test_duplicate_name_is_a_storage_error(runtime):
    db = runtime.proxy
    await db.create_page("Home", "first")

    with pytest.raises(StorageError):
        await db.create_page("Home", "second")

    assert (await db.fetch_page("Home")).raw_content == "first"


@pytest.mark.asyncio
async def test_saving_missing_page_is_not_found(runtime):
    with pytest.raises(NotFound):
        await runtime.proxy.save_page(4242, "nobody home")


@pytest.mark.asyncio
async def test_delete_is_idempotent(runtime):
    db = runtime.proxy
    await db.create_page("Home", "x")
    page_id = (await db.fetch_page("Home")).id

    await db.delete_page(page_id)
    await db.delete_page(page_id)
    assert await db.fetch_all_pages() == []


@pytest.mark.asyncio
async def test_concurrent_creates_are_both_visible(runtime):
    db = runtime.proxy
    await asyncio.gather(
        db.create_page("First", "one"),
        db.create_page("Second", "two"),
    )

    assert await db.fetch_all_pages() == ["First", "Second"]
    assert runtime.scope.live_leases == 0
    assert runtime.proxy.pending_count == 0
