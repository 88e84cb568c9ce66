from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from keepsake._compression import BaseCompressor, BrotliCompressor, IdentityCompressor
from keepsake._exceptions import ValidationError

__all__ = ("CacheConfig", "DEFAULT_CACHE_DURATION")

DEFAULT_CACHE_DURATION = 5 * 24 * 60 * 60  # five days


@dataclass
class CacheConfig:
    """
    Configuration of an `AsyncCache`.

    Attributes:
    ----------
    cache_dir : Path
        Writable root under which the cache keeps its own `keepsake/` directory.

        Default: `.cache` relative to the working directory

    disable_compression : bool
        Store payloads uncompressed.

        Default: False

    compression_level : int
        Brotli quality used for payloads, 0 to 11.

        Default: 3

    default_cache_duration : float
        Freshness lifetime in seconds for responses without `max-age` or `Expires`.

        Default: five days

    max_concurrent_revalidations : int
        How many stale-while-revalidate refreshes may run at the same time.

        Default: 5

        Examples:
        --------
        >>> config = CacheConfig(cache_dir=Path("/tmp"), default_cache_duration=60)
        >>> config.make_compressor().algorithm
        'brotli'
    """

    cache_dir: Path = field(default_factory=lambda: Path(".cache"))
    disable_compression: bool = False
    compression_level: int = 3
    default_cache_duration: float = DEFAULT_CACHE_DURATION
    max_concurrent_revalidations: int = 5

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)

        if not 0 <= self.compression_level <= 11:
            raise ValidationError(
                "Compression level must be between 0 and 11",
                field="compression_level",
                value=self.compression_level,
            )
        if self.default_cache_duration < 0:
            raise ValidationError(
                "The default cache duration cannot be negative",
                field="default_cache_duration",
                value=self.default_cache_duration,
            )
        if self.max_concurrent_revalidations < 1:
            raise ValidationError(
                "At least one revalidation must be allowed to run",
                field="max_concurrent_revalidations",
                value=self.max_concurrent_revalidations,
            )

    def make_compressor(self) -> BaseCompressor:
        if self.disable_compression:
            return IdentityCompressor()
        return BrotliCompressor(level=self.compression_level)
