"""Strava API client used to proxy athlete and activity queries."""

import logging
import types
from typing import Any

import httpx

from .errors import UpstreamFailure, UpstreamTimeout, ValidationError
from .sessions import RunQuestSession

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 200  # Max allowed by Strava API


class StravaClient:
    """Async HTTP client for the Strava API bound to one session's token.

    Every call is a direct passthrough: no caching, no retries.
    """

    BASE_URL = "https://www.strava.com/api/v3"
    DEFAULT_PER_PAGE = 30

    def __init__(
        self,
        session: RunQuestSession,
        base_url: str | None = None,
        timeout: float = 10.0,
    ):
        self.session = session
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "StravaClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()

    def _get_headers(self) -> dict[str, str]:
        """Get authorization headers for API requests."""
        return {"Authorization": f"Bearer {self.session.access_token}"}

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make an authenticated request to the Strava API."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        try:
            response = await self._client.request(
                method,
                endpoint,
                headers=self._get_headers(),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.error("Strava request timed out: %s %s", method, endpoint)
            raise UpstreamTimeout() from e
        except httpx.RequestError as e:
            logger.error("Strava request failed: %s %s: %s", method, endpoint, e)
            raise UpstreamFailure(f"Request failed: {e}", None) from e

        if response.is_error:
            logger.error(
                "Strava API error for %s %s: %s", method, endpoint, response.status_code
            )
            raise UpstreamFailure(
                f"Strava API error: {response.status_code}", response.status_code
            )

        return response

    async def list_activities(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Any:
        """Get one page of the athlete's activities, passed through as returned."""
        if page < 1:
            raise ValidationError("page must be a positive integer")
        if not 1 <= per_page <= MAX_PER_PAGE:
            raise ValidationError(f"per_page must be between 1 and {MAX_PER_PAGE}")

        response = await self._request(
            "GET", "/athlete/activities", params={"page": page, "per_page": per_page}
        )
        return self._json(response)

    async def get_athlete(self) -> Any:
        """Get the authenticated athlete's profile, passed through as returned."""
        response = await self._request("GET", "/athlete")
        return self._json(response)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFailure("Invalid response from Strava", response.status_code) from e
