"""Product repository backed by SQLAlchemy."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.db_models import ProductModel
from ..exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    PersistenceFailureError,
    ensure_found,
    handle_sqlalchemy_errors,
)
from ..media.media_models import ImageAsset
from ..utils.clock import utcnow
from .product_models import Product

logger = logging.getLogger(__name__)


class ProductRepository:
    """Persist products together with their embedded image list."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create_product(
        self,
        *,
        name: str,
        slug: str | None = None,
        product_id: str | None = None,
    ) -> Product:
        now = utcnow()
        model = ProductModel(
            id=product_id or uuid.uuid4().hex,
            name=name,
            slug=slug,
            images_json="[]",
            earliest_deleted_at=None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        with handle_sqlalchemy_errors(entity="product"):
            with self._session_factory() as session:
                session.add(model)
                session.commit()
                return self._to_domain(model)

    def get_product(self, product_id: str) -> Product:
        with handle_sqlalchemy_errors(entity="product"):
            with self._session_factory() as session:
                model = session.get(ProductModel, product_id)
                ensure_found(model, entity="product", identifier=product_id)
                return self._to_domain(model)

    def list_purge_candidates(self, cutoff: datetime, limit: int) -> Sequence[Product]:
        """Products holding at least one image soft-deleted at or before ``cutoff``."""
        stmt = (
            select(ProductModel)
            .where(
                ProductModel.earliest_deleted_at.is_not(None),
                ProductModel.earliest_deleted_at <= cutoff,
            )
            .order_by(ProductModel.earliest_deleted_at, ProductModel.id)
        )
        products: list[Product] = []
        offset = 0
        while len(products) < limit:
            with handle_sqlalchemy_errors(entity="product"):
                with self._session_factory() as session:
                    rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
            for row in rows:
                try:
                    products.append(self._to_domain(row))
                except PersistenceFailureError as exc:
                    # unreadable rows are skipped, the page is topped up from the next one
                    logger.error(
                        "catalog.product.undecodable",
                        extra={"product_id": row.id, "error": str(exc)},
                    )
            if len(rows) < limit:
                break
            offset += len(rows)
        return products[:limit]

    def save_images(self, product: Product) -> Product:
        """Write ``product.images`` if the stored version still matches.

        Raises :class:`ConcurrentModificationError` when another writer bumped
        the version since ``product`` was read.
        """
        now = utcnow()
        stmt = (
            update(ProductModel)
            .where(ProductModel.id == product.id, ProductModel.version == product.version)
            .values(
                images_json=_dump_images(product.images),
                earliest_deleted_at=product.earliest_deleted_at(),
                version=product.version + 1,
                updated_at=now,
            )
        )
        with handle_sqlalchemy_errors(entity="product"):
            with self._session_factory() as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    session.rollback()
                    if session.get(ProductModel, product.id) is None:
                        raise NotFoundError(f"product '{product.id}' not found")
                    raise ConcurrentModificationError(
                        f"product '{product.id}' changed since version {product.version}"
                    )
                session.commit()
        product.version += 1
        product.updated_at = now
        return product

    @staticmethod
    def _to_domain(model: ProductModel) -> Product:
        fallback = model.updated_at or utcnow()
        try:
            documents = json.loads(model.images_json or "[]")
            if not isinstance(documents, list):
                raise ValueError("image list is not a JSON array")
            images = [
                ImageAsset.from_document(document, fallback_deleted_at=fallback)
                for document in documents
            ]
        except ValueError as exc:
            raise PersistenceFailureError(
                f"product '{model.id}' holds an unreadable image list"
            ) from exc
        return Product(
            id=model.id,
            name=model.name,
            slug=model.slug,
            images=images,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


def _dump_images(images: Sequence[ImageAsset]) -> str:
    return json.dumps([image.to_document() for image in images])
