"""
Deterministic hashing helpers.

``compute_hash`` fingerprints migration unit source so the ledger can tell
when a recorded unit has since been edited. ``advisory_lock_key`` turns a
stable name into the 64-bit integer PostgreSQL advisory locks are keyed by,
so the key is never a bare magic number that could collide with some other
tool's use of the same primitive.

Examples:
    >>> compute_hash("CREATE TABLE users (...)") == compute_hash("CREATE TABLE users (...)")
    True
    >>> advisory_lock_key("buildxpert.migrations") == advisory_lock_key("buildxpert.migrations")
    True

Tags:
    hashing, checksum, advisory-lock, buildxpert
"""

import hashlib
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute a deterministic hash from values.

    Values are stringified, joined with ``|`` and hashed with SHA-256. The
    hex digest is truncated to ``length`` characters (default 128 bits).
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:length]


def advisory_lock_key(name: str) -> int:
    """
    Derive a signed 64-bit advisory lock key from ``name``.

    PostgreSQL's ``pg_try_advisory_lock(bigint)`` takes a signed 64-bit
    integer; the first eight bytes of the SHA-256 digest are read as one.
    """
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)
