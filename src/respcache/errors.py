"""Exceptions raised by the response cache.

Only ``PolicyConfigError`` ever reaches application code, and only while the
policy table is loaded at startup. Everything else is caught inside the cache
and degrades to "behave as if there were no cache".
"""

from __future__ import annotations


class CacheError(Exception):
    """Base class for response cache errors."""


class CacheStoreError(CacheError):
    """The backing store rejected or failed a command."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class PayloadCodecError(CacheError):
    """A response body could not be compressed or serialized for storage."""


class PolicyConfigError(CacheError):
    """The endpoint/event policy table is malformed."""

    def __init__(self, location: str, message: str):
        self.location = location
        super().__init__(f"{location}: {message}")
