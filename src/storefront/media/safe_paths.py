"""Resolve untrusted names against a storage root."""

from __future__ import annotations

import os
from pathlib import Path

from ..exceptions import PathTraversalError


def resolve_safe_path(root: Path | str, name: str) -> Path:
    """Return the absolute path of ``name`` inside ``root``.

    Purely lexical: the filesystem is never consulted. Empty names, names with
    a NUL byte, absolute names and anything that normalises to a location
    outside ``root`` (or to ``root`` itself) raise :class:`PathTraversalError`.
    """

    if not name or not isinstance(name, str):
        raise PathTraversalError("empty file name")
    if "\0" in name:
        raise PathTraversalError("file name contains a null byte")
    if os.path.isabs(name) or name.startswith(("/", "\\")):
        raise PathTraversalError("absolute file names are not allowed")

    base = os.path.normpath(os.path.abspath(os.fspath(root)))
    prefix = base if base.endswith(os.sep) else base + os.sep
    candidate = os.path.normpath(os.path.join(base, name))
    if candidate == base or not candidate.startswith(prefix):
        raise PathTraversalError("file name resolves outside the storage root")
    return Path(candidate)
