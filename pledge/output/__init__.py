"""
Structured reports of contract violations
"""

from .json_formatter import ViolationJSONFormatter

__all__ = ["ViolationJSONFormatter"]
