from __future__ import annotations

from pathlib import Path

import pytest

from src.storefront.exceptions import (
    BackendUnavailableError,
    KeyConflictError,
    PathTraversalError,
    WriteFailureError,
)
from src.storefront.media.media_models import DeleteOutcome
from src.storefront.media.storage import LocalDiskStorage


@pytest.mark.asyncio
async def test_put_writes_file_and_returns_public_url(local_storage: LocalDiskStorage, uploads_root: Path) -> None:
    stored = await local_storage.put("1700-swatch.png", b"png-bytes", content_type="image/png")

    assert stored.key == "1700-swatch.png"
    assert stored.url == "http://localhost:4000/uploads/1700-swatch.png"
    assert stored.size_bytes == 9
    assert (uploads_root / "1700-swatch.png").read_bytes() == b"png-bytes"
    assert [p.name for p in uploads_root.iterdir()] == ["1700-swatch.png"]


@pytest.mark.asyncio
async def test_put_rejects_traversal_key(local_storage: LocalDiskStorage, tmp_path: Path) -> None:
    with pytest.raises(PathTraversalError):
        await local_storage.put("../escape.png", b"x")

    assert not (tmp_path / "escape.png").exists()


@pytest.mark.asyncio
async def test_put_failure_maps_to_write_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_bytes(b"")
    storage = LocalDiskStorage(root=blocker, public_base_url="http://localhost:4000")

    with pytest.raises(WriteFailureError):
        await storage.put("nested/x.png", b"x")


@pytest.mark.asyncio
async def test_delete_is_idempotent(local_storage: LocalDiskStorage, uploads_root: Path) -> None:
    await local_storage.put("k.png", b"x")

    first = await local_storage.delete("k.png")
    second = await local_storage.delete("k.png")

    assert first is DeleteOutcome.DELETED
    assert second is DeleteOutcome.ALREADY_ABSENT
    assert not (uploads_root / "k.png").exists()


@pytest.mark.asyncio
async def test_delete_os_error_reports_backend_unavailable(
    local_storage: LocalDiskStorage, uploads_root: Path
) -> None:
    (uploads_root / "folder").mkdir()

    with pytest.raises(BackendUnavailableError):
        await local_storage.delete("folder")


@pytest.mark.asyncio
async def test_exists_tracks_file(local_storage: LocalDiskStorage) -> None:
    assert await local_storage.exists("k.png") is False
    await local_storage.put("k.png", b"x")
    assert await local_storage.exists("k.png") is True


@pytest.mark.unit
def test_public_url_quotes_key(local_storage: LocalDiskStorage) -> None:
    assert local_storage.public_url("a b.png") == "http://localhost:4000/uploads/a%20b.png"


@pytest.mark.asyncio
async def test_put_never_overwrites_existing_key(local_storage: LocalDiskStorage, uploads_root: Path) -> None:
    await local_storage.put("1700-swatch.png", b"first")

    with pytest.raises(KeyConflictError):
        await local_storage.put("1700-swatch.png", b"second")

    assert (uploads_root / "1700-swatch.png").read_bytes() == b"first"
    assert [p.name for p in uploads_root.iterdir()] == ["1700-swatch.png"]
