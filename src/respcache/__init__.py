"""respcache: read-through response cache and event-driven invalidation."""

__version__ = "0.1.0"
