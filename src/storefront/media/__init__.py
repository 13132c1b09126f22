"""Media storage, naming-safe paths and deferred purge."""
