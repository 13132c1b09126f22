"""Storage key derivation for uploaded files."""

from __future__ import annotations

import re
import secrets
import threading
import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable

from .ingest_models import NamingStrategy

MAX_NAME_LENGTH = 120

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(name: str | None) -> str:
    """Collapse whitespace to ``-`` and drop characters outside ``[A-Za-z0-9._-]``."""
    if not name:
        return "upload"
    # browsers on Windows may send the full client path
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE.sub("", _WHITESPACE.sub("-", base.strip()))
    safe = safe.lstrip(".")
    if len(safe) > MAX_NAME_LENGTH:
        suffix = PurePosixPath(safe).suffix[:16]
        safe = safe[: MAX_NAME_LENGTH - len(suffix)] + suffix
    return safe or "upload"


def sanitized_extension(name: str | None) -> str:
    suffix = PurePosixPath(sanitize_filename(name)).suffix.lower()
    return suffix if len(suffix) > 1 else ""


@dataclass(slots=True)
class KeyFactory:
    """Issue ``<timestamp>-<suffix>`` keys with a strictly increasing timestamp.

    When the clock has not advanced past the last issued millisecond the
    previous value plus one is used, so keys never collide within a process.
    """

    clock: Callable[[], float] = time.time
    random_suffix: Callable[[], str] = field(default=lambda: secrets.token_hex(6))
    _last_ms: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def next_timestamp(self) -> int:
        now_ms = int(self.clock() * 1000)
        with self._lock:
            issued = now_ms if now_ms > self._last_ms else self._last_ms + 1
            self._last_ms = issued
            return issued

    def derive(self, original_name: str | None, strategy: NamingStrategy) -> str:
        timestamp = self.next_timestamp()
        if strategy is NamingStrategy.RANDOM:
            return f"{timestamp}-{self.random_suffix()}{sanitized_extension(original_name)}"
        return f"{timestamp}-{sanitize_filename(original_name)}"
