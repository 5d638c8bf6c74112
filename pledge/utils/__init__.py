"""
Small helpers shared across pledge
"""

from .hashing import hash_string, snapshot_variable

__all__ = ["hash_string", "snapshot_variable"]
