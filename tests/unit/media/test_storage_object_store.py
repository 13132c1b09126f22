from __future__ import annotations

from pathlib import Path

import boto3
import pytest
from botocore.stub import ANY, Stubber

from src.storefront.config import BACKEND_LOCAL, BACKEND_S3, StorageConfig
from src.storefront.exceptions import (
    BackendUnavailableError,
    KeyConflictError,
    WriteFailureError,
)
from src.storefront.media.media_models import DeleteOutcome
from src.storefront.media.storage import (
    LocalDiskStorage,
    ObjectStoreStorage,
    build_storage,
)

BUCKET = "shop-media"
REGION = "eu-west-1"


@pytest.fixture()
def s3_client():
    return boto3.client(
        "s3",
        region_name=REGION,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture()
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture()
def storage(s3_client) -> ObjectStoreStorage:
    return ObjectStoreStorage(
        bucket=BUCKET,
        region=REGION,
        client=s3_client,
        delete_retry_attempts=3,
        delete_retry_backoff_seconds=0,
    )


@pytest.mark.asyncio
async def test_put_uploads_under_prefix_without_acl(storage, stubber) -> None:
    stubber.add_response(
        "put_object",
        {},
        {
            "Bucket": BUCKET,
            "Key": "products/1700-swatch.png",
            "Body": ANY,
            "IfNoneMatch": "*",
            "ContentType": "image/png",
        },
    )

    stored = await storage.put("1700-swatch.png", b"data", content_type="image/png")

    assert stored.key == "products/1700-swatch.png"
    assert stored.url == f"https://{BUCKET}.s3.{REGION}.amazonaws.com/products/1700-swatch.png"
    assert stored.size_bytes == 4


@pytest.mark.asyncio
async def test_put_client_error_is_write_failure(storage, stubber) -> None:
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(WriteFailureError):
        await storage.put("k.png", b"data")


@pytest.mark.asyncio
async def test_put_existing_key_is_conflict(storage, stubber) -> None:
    stubber.add_client_error(
        "put_object", service_error_code="PreconditionFailed", http_status_code=412
    )

    with pytest.raises(KeyConflictError):
        await storage.put("1700-swatch.png", b"data")


@pytest.mark.asyncio
async def test_delete_success(storage, stubber) -> None:
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "products/k.png"})

    assert await storage.delete("products/k.png") is DeleteOutcome.DELETED


@pytest.mark.asyncio
async def test_delete_adds_prefix_to_legacy_key(storage, stubber) -> None:
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "products/legacy.png"})

    assert await storage.delete("legacy.png") is DeleteOutcome.DELETED


@pytest.mark.asyncio
async def test_delete_missing_object_counts_as_success(storage, stubber) -> None:
    stubber.add_client_error("delete_object", service_error_code="NoSuchKey", http_status_code=404)

    assert await storage.delete("products/gone.png") is DeleteOutcome.ALREADY_ABSENT


@pytest.mark.asyncio
async def test_delete_retries_transient_errors(storage, stubber) -> None:
    stubber.add_client_error("delete_object", service_error_code="SlowDown", http_status_code=503)
    stubber.add_client_error("delete_object", service_error_code="InternalError", http_status_code=500)
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "products/k.png"})

    assert await storage.delete("products/k.png") is DeleteOutcome.DELETED


@pytest.mark.asyncio
async def test_delete_gives_up_after_retries(storage, stubber) -> None:
    for _ in range(3):
        stubber.add_client_error("delete_object", service_error_code="InternalError", http_status_code=500)

    with pytest.raises(BackendUnavailableError):
        await storage.delete("products/k.png")


@pytest.mark.asyncio
async def test_delete_does_not_retry_permanent_errors(storage, stubber) -> None:
    stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(BackendUnavailableError):
        await storage.delete("products/k.png")


@pytest.mark.asyncio
async def test_exists_maps_missing_head_to_false(storage, stubber) -> None:
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
    stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": "products/k.png"})

    assert await storage.exists("k.png") is False
    assert await storage.exists("products/k.png") is True


@pytest.mark.asyncio
async def test_exists_wraps_other_errors(storage, stubber) -> None:
    stubber.add_client_error("head_object", service_error_code="403", http_status_code=403)

    with pytest.raises(BackendUnavailableError):
        await storage.exists("k.png")


@pytest.mark.unit
def test_public_url_prefers_custom_base(s3_client) -> None:
    storage = ObjectStoreStorage(
        bucket=BUCKET,
        region=REGION,
        client=s3_client,
        public_base_url="https://cdn.shop.example/",
    )

    assert storage.public_url("products/a b.png") == "https://cdn.shop.example/products/a%20b.png"


@pytest.mark.unit
def test_build_storage_selects_backend(tmp_path: Path, s3_client) -> None:
    local = build_storage(
        StorageConfig(backend=BACKEND_LOCAL, uploads_root=tmp_path, public_base_url="http://h")
    )
    remote = build_storage(
        StorageConfig(
            backend=BACKEND_S3,
            uploads_root=tmp_path,
            public_base_url="http://h",
            s3_bucket=BUCKET,
            s3_region=REGION,
        ),
        s3_client=s3_client,
    )

    assert isinstance(local, LocalDiskStorage)
    assert isinstance(remote, ObjectStoreStorage)
    assert remote.client is s3_client


@pytest.mark.unit
def test_build_storage_requires_bucket_for_s3(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        build_storage(
            StorageConfig(backend=BACKEND_S3, uploads_root=tmp_path, public_base_url="http://h")
        )
