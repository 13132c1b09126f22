from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from src.storefront.catalog.product_repository import ProductRepository
from src.storefront.catalog.registry import AssetRegistry
from src.storefront.exceptions import ConcurrentModificationError, NotFoundError
from src.storefront.media.media_models import AssetState, ImageAsset

T0 = datetime(2026, 3, 1, 12, 0, 0)


def _asset(key: str) -> ImageAsset:
    return ImageAsset(key=key, url=f"http://localhost:4000/uploads/{key}")


@pytest.mark.asyncio
async def test_soft_delete_hides_image_but_keeps_descriptor(registry: AssetRegistry) -> None:
    registry.repo.create_product(name="Scarf", product_id="p1")
    for key in ("1-a.png", "2-b.png", "3-c.png"):
        await registry.append_image("p1", _asset(key))

    deleted = await registry.mark_deleted("p1", "2-b.png", now=T0)

    assert deleted.deleted_since == T0
    assert [image.key for image in await registry.active_images("p1")] == ["1-a.png", "3-c.png"]
    everything = await registry.all_images("p1")
    assert [image.key for image in everything] == ["1-a.png", "2-b.png", "3-c.png"]
    assert everything[1].state is AssetState.PENDING_DELETION


@pytest.mark.asyncio
async def test_repeat_soft_delete_keeps_first_timestamp(registry: AssetRegistry) -> None:
    registry.repo.create_product(name="Scarf", product_id="p1")
    await registry.append_image("p1", _asset("1-a.png"))

    await registry.mark_deleted("p1", "1-a.png", now=T0)
    version_after_first = registry.get_product("p1").version
    again = await registry.mark_deleted("p1", "1-a.png", now=T0 + timedelta(hours=6))

    assert again.deleted_since == T0
    assert registry.get_product("p1").version == version_after_first


@pytest.mark.asyncio
async def test_soft_delete_unknown_targets(registry: AssetRegistry) -> None:
    registry.repo.create_product(name="Scarf", product_id="p1")

    with pytest.raises(NotFoundError):
        await registry.mark_deleted("p1", "nope.png")
    with pytest.raises(NotFoundError):
        await registry.mark_deleted("missing", "nope.png")


@pytest.mark.asyncio
async def test_concurrent_appends_are_serialized(registry: AssetRegistry) -> None:
    registry.repo.create_product(name="Scarf", product_id="p1")

    await asyncio.gather(*(registry.append_image("p1", _asset(f"{i}-x.png")) for i in range(10)))

    keys = [image.key for image in await registry.all_images("p1")]
    assert sorted(keys) == sorted(f"{i}-x.png" for i in range(10))


@pytest.mark.asyncio
async def test_duplicate_key_is_rejected(registry: AssetRegistry) -> None:
    registry.repo.create_product(name="Scarf", product_id="p1")
    await registry.append_image("p1", _asset("1-a.png"))

    with pytest.raises(ValueError):
        await registry.append_image("p1", _asset("1-a.png"))


@pytest.mark.asyncio
async def test_remove_purged_only_drops_pending_images(registry: AssetRegistry) -> None:
    registry.repo.create_product(name="Scarf", product_id="p1")
    await registry.append_image("p1", _asset("1-a.png"))
    await registry.append_image("p1", _asset("2-b.png"))
    await registry.mark_deleted("p1", "1-a.png", now=T0)

    removed = await registry.remove_purged("p1", ["1-a.png", "2-b.png"])

    assert [image.key for image in removed] == ["1-a.png"]
    assert removed[0].state is AssetState.PURGED
    assert [image.key for image in await registry.all_images("p1")] == ["2-b.png"]
    assert registry.get_product("p1").earliest_deleted_at() is None


@pytest.mark.asyncio
async def test_version_conflict_is_retried(session_factory) -> None:
    class RacingRepository(ProductRepository):
        conflicts = 1

        def save_images(self, product):
            if RacingRepository.conflicts:
                RacingRepository.conflicts -= 1
                raise ConcurrentModificationError("someone else won")
            return super().save_images(product)

    registry = AssetRegistry(repo=RacingRepository(session_factory))
    registry.repo.create_product(name="Scarf", product_id="p1")

    await registry.append_image("p1", _asset("1-a.png"))

    assert [image.key for image in await registry.all_images("p1")] == ["1-a.png"]


@pytest.mark.asyncio
async def test_persistent_conflict_surfaces(session_factory) -> None:
    class AlwaysRacing(ProductRepository):
        calls = 0

        def save_images(self, product):
            AlwaysRacing.calls += 1
            raise ConcurrentModificationError("someone else won")

    registry = AssetRegistry(repo=AlwaysRacing(session_factory), max_conflict_retries=3)
    registry.repo.create_product(name="Scarf", product_id="p1")

    with pytest.raises(ConcurrentModificationError):
        await registry.append_image("p1", _asset("1-a.png"))

    assert AlwaysRacing.calls == 3
