"""Strava OAuth authorization-code exchange."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from .config import RunQuestConfig
from .errors import (
    InvalidOrExpiredCode,
    MissingCode,
    UnauthorizedClient,
    UpstreamAuthRejected,
    UpstreamFailure,
    UpstreamTimeout,
    ValidationError,
)
from .models import TokenResponse
from .sessions import RunQuestSession, SessionStore

logger = logging.getLogger(__name__)


class StravaOAuthService:
    """Exchange authorization codes server-side and open local sessions.

    The client secret never leaves this service: callers only send the code.
    """

    def __init__(self, config: RunQuestConfig, session_store: SessionStore) -> None:
        self.config = config
        self.session_store = session_store
        self.token_url = config.strava_token_url

    async def exchange_code(self, code: Any) -> TokenResponse:
        """Exchange an authorization code for OAuth tokens and the athlete profile."""
        if code is not None and not isinstance(code, str):
            raise ValidationError("Authorization code must be a string")
        if not code or not code.strip():
            raise MissingCode()

        logger.info("Exchanging authorization code with Strava")
        try:
            async with httpx.AsyncClient(timeout=self.config.runquest_upstream_timeout) as client:
                response = await client.post(
                    self.token_url,
                    data={
                        "client_id": self.config.strava_client_id,
                        "client_secret": self.config.strava_client_secret.get_secret_value(),
                        "code": code.strip(),
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.TimeoutException as e:
            logger.error("Strava token endpoint timed out")
            raise UpstreamTimeout() from e
        except httpx.RequestError as e:
            logger.error("Network error while contacting Strava: %s", e)
            raise UpstreamFailure("Failed to connect with Strava") from e

        logger.info("Strava token response status: %s", response.status_code)
        if response.is_error:
            if response.status_code == 400:
                raise InvalidOrExpiredCode()
            if response.status_code == 401:
                raise UnauthorizedClient()
            raise UpstreamFailure("Failed to connect with Strava", response.status_code)

        try:
            data: Any = response.json()
        except ValueError as e:
            logger.error("Failed to parse Strava token response")
            raise UpstreamFailure("Invalid response from Strava", response.status_code) from e

        if not isinstance(data, dict):
            raise UpstreamFailure("Invalid response from Strava", response.status_code)

        if data.get("errors"):
            logger.error("Strava rejected the token exchange: %s", data.get("errors"))
            raise UpstreamAuthRejected(data.get("message") or "Strava authentication failed")

        try:
            return TokenResponse(**data)
        except PydanticValidationError as e:
            logger.error("Unexpected Strava token payload: %s", e.error_count())
            raise UpstreamFailure("Invalid response from Strava", response.status_code) from e

    async def create_session_from_code(self, code: Any) -> RunQuestSession:
        """Complete the OAuth authorization code flow and persist a session."""
        token_data = await self.exchange_code(code)
        session = await self.session_store.create_session(token_data)
        if token_data.athlete:
            logger.info("OAuth successful for athlete %s", token_data.athlete.id)
        return session
