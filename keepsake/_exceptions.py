from __future__ import annotations

import typing as tp

__all__ = (
    "CacheError",
    "CacheMissError",
    "CompressionError",
    "InitializationError",
    "NetworkError",
    "SerializationError",
    "StorageError",
    "ValidationError",
)


class CacheError(Exception):
    """
    Base class for every error raised by keepsake.

    The exception that caused the failure, if any, is kept in `cause`
    and also chained as `__cause__`.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def _details(self) -> tp.List[str]:
        return []

    def __str__(self) -> str:
        details = ", ".join(self._details())
        text = self.message
        if details:
            text += f" ({details})"
        if self.cause is not None:
            text += f" (Original: {self.cause!r})"
        return text


class NetworkError(CacheError):
    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.url = url
        self.status_code = status_code

    def _details(self) -> tp.List[str]:
        details = []
        if self.url is not None:
            details.append(f"URL: {self.url}")
        if self.status_code is not None:
            details.append(f"Status Code: {self.status_code}")
        return details


class StorageError(CacheError):
    def __init__(self, message: str, path: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, cause)
        self.path = path

    def _details(self) -> tp.List[str]:
        return [f"Path: {self.path}"] if self.path is not None else []


class CompressionError(CacheError):
    def __init__(self, message: str, algorithm: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, cause)
        self.algorithm = algorithm

    def _details(self) -> tp.List[str]:
        return [f"Algorithm: {self.algorithm}"] if self.algorithm is not None else []


class ValidationError(CacheError):
    def __init__(self, message: str, field: str | None = None, value: tp.Any = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value

    def _details(self) -> tp.List[str]:
        return [f"{self.field}={self.value!r}"] if self.field is not None else []


class InitializationError(CacheError): ...


class SerializationError(CacheError):
    def __init__(self, message: str, data_type: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, cause)
        self.data_type = data_type


class CacheMissError(CacheError):
    """Raised when `only_if_cached` is requested but nothing is stored for the URL."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url
