from keepsake._cache import AsyncCache as AsyncCache
from keepsake._compression import (
    BaseCompressor as BaseCompressor,
    BrotliCompressor as BrotliCompressor,
    IdentityCompressor as IdentityCompressor,
)
from keepsake._config import CacheConfig as CacheConfig, DEFAULT_CACHE_DURATION as DEFAULT_CACHE_DURATION
from keepsake._exceptions import (
    CacheError as CacheError,
    CacheMissError as CacheMissError,
    CompressionError as CompressionError,
    InitializationError as InitializationError,
    NetworkError as NetworkError,
    SerializationError as SerializationError,
    StorageError as StorageError,
    ValidationError as ValidationError,
)
from keepsake._expiration import calculate_expires_at as calculate_expires_at
from keepsake._headers import (
    CacheControl as CacheControl,
    Headers as Headers,
    Vary as Vary,
    parse_cache_control as parse_cache_control,
    parse_directives as parse_directives,
    select_vary_headers as select_vary_headers,
)
from keepsake._keygen import plain_key as plain_key, vary_aware_key as vary_aware_key
from keepsake._scheduler import AsyncRevalidationScheduler as AsyncRevalidationScheduler
from keepsake._spec import (
    AnyState as AnyState,
    CouldNotBeStored as CouldNotBeStored,
    FetchFailed as FetchFailed,
    FromCache as FromCache,
    IdleClient as IdleClient,
    InvalidateEntries as InvalidateEntries,
    NeedFetch as NeedFetch,
    NotModified as NotModified,
    ServeStale as ServeStale,
    State as State,
    StoreAndUse as StoreAndUse,
)
from keepsake._storage import AsyncEntryStore as AsyncEntryStore
from keepsake.models import (
    CacheEntryMetadata as CacheEntryMetadata,
    ProgressCallback as ProgressCallback,
    RequestOptions as RequestOptions,
    RevalidationTask as RevalidationTask,
)

__all__ = (
    # Cache
    "AsyncCache",
    "CacheConfig",
    "DEFAULT_CACHE_DURATION",
    ## States
    "AnyState",
    "State",
    "IdleClient",
    "FromCache",
    "ServeStale",
    "NeedFetch",
    "NotModified",
    "StoreAndUse",
    "CouldNotBeStored",
    "InvalidateEntries",
    "FetchFailed",
    ## Models
    "CacheEntryMetadata",
    "RequestOptions",
    "RevalidationTask",
    "ProgressCallback",
    ## Headers
    "Headers",
    "CacheControl",
    "Vary",
    "parse_cache_control",
    "parse_directives",
    "select_vary_headers",
    "calculate_expires_at",
    ## Keys
    "plain_key",
    "vary_aware_key",
    ## Storage
    "AsyncEntryStore",
    "BaseCompressor",
    "BrotliCompressor",
    "IdentityCompressor",
    "AsyncRevalidationScheduler",
    # Errors
    "CacheError",
    "CacheMissError",
    "CompressionError",
    "InitializationError",
    "NetworkError",
    "SerializationError",
    "StorageError",
    "ValidationError",
)
