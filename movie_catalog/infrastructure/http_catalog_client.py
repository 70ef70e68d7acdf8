"""
HTTP implementation of the remote catalog client.

Endpoints (JSON):
- GET /movies/popular?page=N -> {"page": N, "movies": [...], "genres": [...]}
- GET /movies/{id}           -> movie object, optionally wrapped as {"movie": {...}}
- GET /genres                -> {"genres": [...]} or a bare list

Transport errors are retried a bounded number of times. HTTP errors are
mapped onto the domain exceptions and never retried here; 429 in particular
is surfaced so the caller can back off.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import CatalogSettings
from ..domain.entities import CatalogPage, Genre, Movie
from ..domain.exceptions import (
    CatalogUnavailableException,
    MalformedResponseException,
    MovieNotFoundException,
    RateLimitExceededException,
    ValidationException,
)
from .catalog_client import ICatalogClient
from .catalog_schemas import GenreListPayload, MoviePayload, PopularPayload
from .circuit_breaker import CircuitBreaker
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SERVICE_NAME = "movie_catalog"

STATUS_MESSAGES = {
    400: "Bad Request - the server could not understand the request",
    401: "Unauthorized - check the catalog API key",
    403: "Forbidden - no access to this resource",
    404: "Not Found - the requested resource does not exist",
    408: "Request Timeout - the server timed out waiting for the request",
    409: "Conflict - duplicate or conflicting resource",
    422: "Unprocessable Entity - validation failed on submitted data",
    429: "Too Many Requests - rate limited",
    500: "Internal Server Error - something went wrong on the server",
    502: "Bad Gateway - invalid response from the upstream server",
    503: "Service Unavailable - the server is temporarily unavailable",
    504: "Gateway Timeout - the server did not respond in time",
}


def status_message(status_code: int) -> str:
    return STATUS_MESSAGES.get(status_code, f"HTTP {status_code} - unexpected server error")


def _describe_validation_error(error: ValueError) -> str:
    if isinstance(error, ValidationError):
        first = error.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        return f"{error.error_count()} validation error(s), first at '{location}': {first.get('msg')}"
    return str(error)


class HttpCatalogClient(ICatalogClient):
    """
    Catalog client over httpx with fault tolerance.

    Features:
    - Circuit breaker for failure protection
    - Client-side rate limiting that fails fast
    - Bounded retry with exponential backoff on transport errors
    - Async HTTP requests with connection pooling
    """

    USER_AGENT = "movie-catalog-cache/0.1"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        max_retries: int = 2,
        rate_limit_requests: int = 10,
        rate_limit_window: int = 1,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        retry_wait_seconds: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the catalog client.

        Args:
            base_url: Catalog root URL
            api_key: Optional bearer token
            timeout_seconds: Request timeout
            max_retries: Attempts per request on transport errors
            rate_limit_requests: Max requests per window
            rate_limit_window: Rate limit window in seconds
            failure_threshold: Failures before the circuit opens
            recovery_timeout: Seconds before a half-open trial call
            retry_wait_seconds: Base of the exponential backoff
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout_seconds
        self.max_retries = max_retries
        self.retry_wait_seconds = retry_wait_seconds
        self._transport = transport

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name=SERVICE_NAME,
            ignored_exceptions=(
                MovieNotFoundException,
                MalformedResponseException,
                RateLimitExceededException,
            ),
        )

        self.rate_limiter = RateLimiter(
            max_requests=rate_limit_requests,
            window_seconds=rate_limit_window,
            name=SERVICE_NAME,
        )

        # HTTP client (lazy initialization)
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: CatalogSettings) -> "HttpCatalogClient":
        return cls(
            base_url=settings.catalog_base_url,
            api_key=settings.catalog_api_key,
            timeout_seconds=settings.catalog_timeout_seconds,
            max_retries=settings.catalog_max_retries,
            rate_limit_requests=settings.catalog_rate_limit_requests,
            rate_limit_window=settings.catalog_rate_limit_window,
            failure_threshold=settings.circuit_failure_threshold,
            recovery_timeout=settings.circuit_recovery_timeout,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self.USER_AGENT, "Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client connections."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_popular(self, page: int) -> CatalogPage:
        if page < 1:
            raise ValidationException("page", page, "Page numbers start at 1")

        endpoint = "/movies/popular"
        data = await self._request(endpoint, params={"page": page})
        try:
            catalog_page = PopularPayload.model_validate(data).to_entity(page)
        except ValueError as e:
            logger.error(f"Malformed popular page {page} from catalog: {e}")
            raise MalformedResponseException(endpoint, _describe_validation_error(e))

        logger.info(
            f"Catalog popular page {page}: {len(catalog_page.movies)} movies, "
            f"{len(catalog_page.genres)} genres"
        )
        return catalog_page

    async def fetch_by_id(self, movie_id: int) -> Movie:
        endpoint = f"/movies/{movie_id}"
        data = await self._request(endpoint, not_found_id=movie_id)
        if isinstance(data, dict) and isinstance(data.get("movie"), dict):
            data = data["movie"]

        try:
            movie = MoviePayload.model_validate(data).to_entity()
        except ValueError as e:
            logger.error(f"Malformed movie {movie_id} from catalog: {e}")
            raise MalformedResponseException(endpoint, _describe_validation_error(e))

        if movie.id != movie_id:
            raise MalformedResponseException(
                endpoint, f"asked for movie {movie_id}, got movie {movie.id}"
            )
        return movie

    async def fetch_genres(self) -> List[Genre]:
        endpoint = "/genres"
        data = await self._request(endpoint)
        if isinstance(data, list):
            data = {"genres": data}

        try:
            payload = GenreListPayload.model_validate(data)
        except ValueError as e:
            logger.error(f"Malformed genre list from catalog: {e}")
            raise MalformedResponseException(endpoint, _describe_validation_error(e))

        logger.info(f"Catalog returned {len(payload.genres)} genres")
        return [genre.to_entity() for genre in payload.genres]

    def get_health_status(self) -> dict:
        return {
            "service": SERVICE_NAME,
            "base_url": self.base_url,
            "circuit_breaker": self.circuit_breaker.get_status(),
            "rate_limiter": self.rate_limiter.get_current_usage(),
        }

    async def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        not_found_id: Optional[int] = None,
    ) -> Any:
        """
        Make a GET request through the rate limiter and circuit breaker.

        Returns:
            Decoded JSON body
        """
        self.rate_limiter.acquire()
        return await self.circuit_breaker.call(self._send, endpoint, params, not_found_id)

    async def _send(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        not_found_id: Optional[int],
    ) -> Any:
        client = await self._get_client()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=5),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await client.get(endpoint, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"Catalog request {endpoint} timed out: {e}")
            raise CatalogUnavailableException(SERVICE_NAME, f"timeout on {endpoint}")
        except httpx.TransportError as e:
            logger.warning(f"Catalog request {endpoint} failed: {e}")
            raise CatalogUnavailableException(SERVICE_NAME, f"network error on {endpoint}: {e}")

        self._raise_for_status(response, endpoint, not_found_id)

        try:
            return response.json()
        except ValueError:
            logger.error(f"Catalog returned non-JSON body for {endpoint}")
            raise MalformedResponseException(endpoint, "body is not valid JSON")

    @staticmethod
    def _raise_for_status(
        response: httpx.Response, endpoint: str, not_found_id: Optional[int]
    ) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return

        logger.warning(f"Catalog request {endpoint} returned HTTP {status}")

        if status == 404 and not_found_id is not None:
            raise MovieNotFoundException(not_found_id)

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitExceededException(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        raise CatalogUnavailableException(SERVICE_NAME, status_message(status), status_code=status)
