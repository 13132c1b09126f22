"""Upload, soft-delete and purge an image through the HTTP surface."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from src.storefront.main import create_app
from src.storefront.utils.clock import utcnow

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.mark.integration
def test_swatch_lifecycle(app_config) -> None:
    app = create_app(app_config)
    app.state.disable_image_cleanup = True
    uploads_root = app_config.storage.uploads_root

    with TestClient(app) as client:
        product_id = client.post("/api/products", json={"name": "Silk scarf"}).json()["id"]

        uploaded = client.post(
            f"/api/products/{product_id}/images",
            files={"image": ("swatch.png", PNG_BYTES, "image/png")},
        )
        assert uploaded.status_code == 200
        key = uploaded.json()["key"]
        assert uploaded.json()["originalName"] == "swatch.png"

        served = client.get(f"/uploads/{key}")
        assert served.status_code == 200
        assert served.content == PNG_BYTES

        deleted_at = utcnow()
        assert client.delete(f"/api/products/{product_id}/images/{key}").status_code == 200
        assert client.get(f"/api/products/{product_id}/images").json() == []
        # bytes stay reachable until the grace period passes
        assert client.get(f"/uploads/{key}").status_code == 200

        job = app.state.deletion_job
        early = asyncio.run(job.run_once(now=deleted_at + timedelta(hours=23)))
        assert early.purged_count == 0
        assert (uploads_root / key).exists()

        report = asyncio.run(job.run_once(now=deleted_at + timedelta(hours=25)))
        assert report.assets_purged == [(product_id, key)]
        assert not (uploads_root / key).exists()
        assert client.get(f"/uploads/{key}").status_code == 404
        listing = client.get(
            f"/api/products/{product_id}/images", params={"include_deleted": "true"}
        ).json()
        assert listing == []


@pytest.mark.integration
def test_background_cleanup_task_starts_and_stops(app_config) -> None:
    app = create_app(app_config)

    with TestClient(app):
        task = app.state.image_cleanup_task
        assert task is not None
        assert not task.done()

    assert app.state.image_cleanup_task is None
