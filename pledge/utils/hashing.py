"""
Deterministic names for values captured by old() expressions.
"""

import hashlib

from ..core.config import OLD_VARIABLE_PREFIX

SNAPSHOT_DIGEST_LENGTH = 12


def hash_string(content: str) -> str:
    """
    Compute SHA-256 hash of a string.

    Args:
        content: String to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def snapshot_variable(key: str) -> str:
    """
    Name of the local binding holding the snapshot for `key`.

    Identical keys always map to the same identifier, which is what lets
    repeated `old(E)` forms share a single snapshot.

    Args:
        key: Canonical source text of the captured expression

    Returns:
        A valid Python identifier
    """
    return f"{OLD_VARIABLE_PREFIX}{hash_string(key)[:SNAPSHOT_DIGEST_LENGTH]}"
