"""Fingerprint engine: content-addressable SHA-256 digests.

The fingerprint of a piece of content is the lowercase hex SHA-256 digest of
its raw bytes.  It is the unique key for ownership: same bytes, same
fingerprint, on any platform, at any time.

Also hosts the canonical JSON serializer used for ledger proof notes.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path
from typing import Any

from veridica.core.errors import HashError

FINGERPRINT_HEX_LENGTH = 64
DEFAULT_CHUNK_SIZE = 1024 * 1024

_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def compute_fingerprint(data: bytes | bytearray | memoryview) -> str:
    """Return the SHA-256 hex digest of raw content bytes.

    Raises
    ------
    HashError
        If *data* is not a bytes-like object.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise HashError(
            f"Cannot fingerprint {type(data).__name__}; expected raw bytes"
        )
    return hashlib.sha256(data).hexdigest()


def fingerprint_file(path: Path | str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Stream a file through SHA-256.

    Produces the same digest as ``compute_fingerprint(path.read_bytes())``
    without holding the whole file in memory.
    """
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as exc:
        raise HashError(f"Cannot read {path}: {exc}") from exc
    return digest.hexdigest()


def is_fingerprint(value: str) -> bool:
    """Check that *value* has the shape of a fingerprint (64 lowercase hex)."""
    return bool(_FINGERPRINT_RE.match(value or ""))
