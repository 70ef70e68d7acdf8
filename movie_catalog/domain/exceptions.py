"""
Custom exceptions for the movie catalog domain.

These exceptions represent domain-level errors and are independent
of infrastructure concerns (HTTP, database, etc.).
"""

from typing import Any, Iterable, Optional


class MovieCatalogException(Exception):
    """Base exception for all movie catalog errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class CatalogUnavailableException(MovieCatalogException):
    """Raised when the remote catalog cannot be reached or fails transiently."""

    def __init__(
        self,
        service: str,
        reason: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        message = f"Catalog service '{service}' unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            details={"service": service, "reason": reason, "status_code": status_code},
        )
        self.status_code = status_code


class RateLimitExceededException(MovieCatalogException):
    """Raised when the catalog (or the local limiter in front of it) throttles us."""

    def __init__(
        self,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        retry_after: Optional[int] = None,
    ):
        if limit and window_seconds:
            message = f"Rate limit exceeded: {limit} requests per {window_seconds} seconds"
        else:
            message = "Rate limit exceeded"
        if retry_after:
            message += f". Retry after {retry_after} seconds"
        super().__init__(
            message=message,
            details={
                "limit": limit,
                "window_seconds": window_seconds,
                "retry_after": retry_after,
            },
        )
        self.retry_after = retry_after


class NotFoundException(MovieCatalogException):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity: str, identifier: Any):
        super().__init__(
            message=f"{entity} not found: {identifier}",
            details={"entity": entity, "identifier": identifier},
        )
        self.identifier = identifier


class MovieNotFoundException(NotFoundException):
    """Raised when a movie cannot be found locally or in the catalog."""

    def __init__(self, movie_id: Any):
        super().__init__("Movie", movie_id)


class GenreNotFoundException(NotFoundException):
    """Raised when a genre is not in the Genre Store."""

    def __init__(self, genre_id: Any):
        super().__init__("Genre", genre_id)


class MalformedResponseException(MovieCatalogException):
    """Raised when a catalog response fails validation."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(
            message=f"Malformed response from {endpoint}: {reason}",
            details={"endpoint": endpoint, "reason": reason},
        )


class DataIntegrityException(MovieCatalogException):
    """Raised when data integrity constraints are violated."""

    def __init__(self, entity: str, reason: str, details: Optional[dict] = None):
        message = f"Data integrity error for {entity}: {reason}"
        merged = {"entity": entity, "reason": reason}
        merged.update(details or {})
        super().__init__(message=message, details=merged)


class ReferentialIntegrityException(DataIntegrityException):
    """Raised when movies reference genres that are not stored yet."""

    def __init__(self, missing_genre_ids: Iterable[int]):
        missing = sorted(set(missing_genre_ids))
        super().__init__(
            "movie",
            f"unknown genre ids {missing}",
            details={"missing_genre_ids": missing},
        )
        self.missing_genre_ids = missing


class StoreException(MovieCatalogException):
    """Raised when a local store operation fails."""

    def __init__(self, operation: str, reason: Optional[str] = None):
        message = f"Store {operation} failed"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message, details={"operation": operation, "reason": reason}
        )


class ValidationException(MovieCatalogException):
    """Raised when input validation fails."""

    def __init__(self, field: str, value: Any, reason: str):
        message = f"Validation failed for {field}: {reason}"
        super().__init__(
            message=message,
            details={"field": field, "value": str(value), "reason": reason},
        )


class CircuitBreakerOpenException(CatalogUnavailableException):
    """Raised when circuit breaker is open (too many failures)."""

    def __init__(
        self, service: str, failure_count: int, retry_after: Optional[int] = None
    ):
        reason = f"circuit open after {failure_count} failures"
        if retry_after:
            reason += f", retry after {retry_after} seconds"
        super().__init__(service=service, reason=reason)
        self.details.update({"failure_count": failure_count, "retry_after": retry_after})
        self.retry_after = retry_after


# Remote failures that may be answered from the local cache
TRANSIENT_REMOTE_ERRORS = (CatalogUnavailableException, RateLimitExceededException)
