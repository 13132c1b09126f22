from __future__ import annotations

import os
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.storefront.catalog.product_repository import ProductRepository
from src.storefront.catalog.registry import AssetRegistry
from src.storefront.config import AppConfig, load_config
from src.storefront.db.db_init import init_db
from src.storefront.media.storage import LocalDiskStorage

os.environ.setdefault("MEDIA_STORAGE_BACKEND", "local")
os.environ.setdefault("FRONTEND_URL", "https://shop.example")


@pytest.fixture()
def session_factory(tmp_path: Path) -> sessionmaker:
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'catalog-test.db').as_posix()}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture()
def product_repo(session_factory) -> ProductRepository:
    return ProductRepository(session_factory)


@pytest.fixture()
def registry(product_repo) -> AssetRegistry:
    return AssetRegistry(repo=product_repo)


@pytest.fixture()
def uploads_root(tmp_path: Path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture()
def local_storage(uploads_root: Path) -> LocalDiskStorage:
    return LocalDiskStorage(root=uploads_root, public_base_url="http://localhost:4000")


@pytest.fixture()
def app_config(tmp_path: Path, monkeypatch) -> AppConfig:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{(tmp_path / 'app.db').as_posix()}")
    monkeypatch.setenv("UPLOADS_ROOT", str(tmp_path / "app-uploads"))
    monkeypatch.setenv("SERVER_URL", "http://testserver")
    monkeypatch.setenv("FRONTEND_URL", "https://shop.example")
    monkeypatch.setenv("MEDIA_STORAGE_BACKEND", "local")
    monkeypatch.delenv("USE_S3", raising=False)
    return load_config()
