"""Storefront media service.

Product image ingestion, soft deletion and deferred purge over local disk or
S3-compatible object storage.
"""
