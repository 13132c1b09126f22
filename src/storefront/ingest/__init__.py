"""Upload ingestion: validation, key naming, storage and registration."""
