"""
Compression Utilities
=====================

Byte-level compression for the encrypted file payload.

Supported codecs:
- gzip: stdlib gzip container (default, the on-disk format of the encrypted store)
- lz4: blosc2 lz4, very fast
- zstd: blosc2 Zstandard, excellent ratio

Decompression does not need to be told the codec: gzip streams are recognized
by their magic bytes and everything else is handed to blosc2, whose frames are
self-describing.

Usage:
    from polykv.compression import compress, decompress

    packed = compress(b'{"alice": 1}', codec="zstd", level=5)
    assert decompress(packed) == b'{"alice": 1}'
"""

import gzip
import logging
import zlib

import blosc2 as blosc

from .error_handling import PolykvError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

_BLOSC_CODECS = {
    "lz4": blosc.Codec.LZ4,
    "zstd": blosc.Codec.ZSTD,
}


class CompressionError(PolykvError):
    """Raised when compression fails."""

    pass


class DecompressionError(PolykvError):
    """Raised when decompression fails."""

    pass


def list_available_codecs():
    """List the codec names accepted by ``compress``."""
    return ["gzip"] + sorted(_BLOSC_CODECS)


def compress(data: bytes, codec: str = "gzip", level: int = 6) -> bytes:
    """Compress a byte string.

    Parameters
    ----------
    data : bytes
        Payload to compress.
    codec : str
        One of ``list_available_codecs()``.
    level : int
        Compression level, 0 (store) to 9 (best).

    Raises
    ------
    CompressionError
        If the codec is unknown or the compressor fails
    """
    if codec not in ("gzip", *_BLOSC_CODECS):
        raise CompressionError(
            f"Unknown compression codec: {codec}",
            {"available": list_available_codecs()},
        )

    try:
        if codec == "gzip":
            # Fixed mtime keeps identical payloads byte-identical
            return gzip.compress(bytes(data), compresslevel=level, mtime=0)

        carr = blosc.compress(
            bytes(data),
            typesize=1,
            clevel=level,
            filter=blosc.Filter.NOFILTER,
            codec=_BLOSC_CODECS[codec],
        )
        if isinstance(carr, (bytearray, memoryview)):
            carr = bytes(carr)
        return carr
    except Exception as e:
        raise CompressionError(f"Failed to compress data: {e}", {"codec": codec}) from e


def decompress(data: bytes) -> bytes:
    """Decompress a byte string produced by ``compress``.

    Raises
    ------
    DecompressionError
        If the payload is empty or corrupt
    """
    if not data:
        raise DecompressionError("Cannot decompress an empty payload")

    if data[:2] == GZIP_MAGIC:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise DecompressionError(f"Corrupt gzip payload: {e}") from e

    try:
        decompressed = blosc.decompress(data)
    except Exception as e:
        raise DecompressionError(f"Corrupt blosc2 payload: {e}") from e

    if isinstance(decompressed, (bytearray, memoryview)):
        return bytes(decompressed)
    if not isinstance(decompressed, bytes):
        raise DecompressionError(
            f"Unexpected decompression result type: {type(decompressed).__name__}"
        )
    return decompressed
