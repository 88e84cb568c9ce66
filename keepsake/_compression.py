from __future__ import annotations

import brotli

from keepsake._exceptions import CompressionError, ValidationError

__all__ = ("BaseCompressor", "BrotliCompressor", "IdentityCompressor")


class BaseCompressor:
    algorithm: str = "base"

    def compress(self, data: bytes) -> bytes:
        raise NotImplementedError()

    def decompress(self, data: bytes) -> bytes:
        raise NotImplementedError()


class IdentityCompressor(BaseCompressor):
    """Stores payloads as they are. Used when compression is disabled."""

    algorithm = "identity"

    def compress(self, data: bytes) -> bytes:
        return bytes(data)

    def decompress(self, data: bytes) -> bytes:
        return bytes(data)


class BrotliCompressor(BaseCompressor):
    """
    Brotli payload codec.

    :param level: Brotli quality, from 0 (fastest) to 11 (smallest), defaults to 3
    :type level: int
    """

    algorithm = "brotli"

    def __init__(self, level: int = 3) -> None:
        if not 0 <= level <= 11:
            raise ValidationError("Compression level must be between 0 and 11", field="level", value=level)
        self.level = level

    def compress(self, data: bytes) -> bytes:
        try:
            return brotli.compress(data, quality=self.level)
        except brotli.error as exc:
            raise CompressionError("Failed to compress data", algorithm=self.algorithm, cause=exc) from exc

    def decompress(self, data: bytes) -> bytes:
        try:
            return brotli.decompress(data)
        except brotli.error as exc:
            raise CompressionError("Failed to decompress data", algorithm=self.algorithm, cause=exc) from exc
