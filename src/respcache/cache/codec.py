"""Compression codec for cached response bodies.

Stored value format: base64(zlib(utf8(json_document))).

Entries written by an older encoder may hold a JSON string that itself
contains the JSON document; ``decode`` unwraps those, ``encode`` never
produces them.
"""

from __future__ import annotations

import base64
import binascii
import logging
import zlib
from typing import Any

import orjson

from respcache.errors import PayloadCodecError

logger = logging.getLogger(__name__)


def as_json_text(value: str | bytes) -> bytes | None:
    """Return the UTF-8 bytes of ``value`` if it already is a JSON document."""
    raw = value.encode() if isinstance(value, str) else value
    try:
        orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    return raw


class PayloadCodec:
    """Serializes response bodies to compact strings and back."""

    def __init__(self, compression_level: int = 6):
        self.compression_level = compression_level

    def encode(self, value: Any) -> str:
        """Serialize, compress and base64-encode a response body.

        Raises:
            PayloadCodecError: If the value cannot be serialized or compressed.
                Callers skip caching the value.
        """
        data: bytes | None = None
        if isinstance(value, (str, bytes, bytearray)):
            data = as_json_text(bytes(value) if isinstance(value, bytearray) else value)

        try:
            if data is None:
                data = orjson.dumps(value)
            compressed = zlib.compress(data, self.compression_level)
        except (TypeError, orjson.JSONEncodeError, zlib.error) as e:
            raise PayloadCodecError(f"Failed to compress/cache data: {e}") from e

        return base64.b64encode(compressed).decode("ascii")

    def decode(self, stored: str | bytes) -> Any | None:
        """Reverse ``encode``.

        Returns None when the value cannot be decompressed, which callers
        treat as a cache miss. Text that does not parse at either stage is
        returned verbatim, so a stored JSON string comes back as its JSON text.
        """
        try:
            text = zlib.decompress(base64.b64decode(stored, validate=True)).decode("utf-8")
        except (binascii.Error, ValueError, zlib.error) as e:
            logger.debug(f"Discarding undecodable cache entry: {e}")
            return None

        try:
            parsed = orjson.loads(text)
        except orjson.JSONDecodeError:
            return text
        if isinstance(parsed, str):
            try:
                return orjson.loads(parsed)
            except orjson.JSONDecodeError:
                return text
        return parsed
