"""Starlette application exposing the RunQuest HTTP API."""

from __future__ import annotations

import json
import logging
import traceback
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .client import StravaClient
from .config import RunQuestConfig
from .dynamo import DynamoItemTable
from .errors import ConfigurationError, MedalNotFound, RunQuestError, ValidationError
from .medals import DynamoMedalStore, MedalIssuer, MedalStore
from .models import Athlete, MedalRequest
from .oauth import StravaOAuthService
from .races import RaceCatalog, load_races
from .sessions import DynamoSessionStore, SessionStore

logger = logging.getLogger(__name__)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer") from exc


def _strava_client(request: Request, session) -> StravaClient:
    config: RunQuestConfig = request.app.state.config
    return StravaClient(
        session,
        base_url=config.strava_api_url,
        timeout=config.runquest_upstream_timeout,
    )


# Strava proxy


async def oauth_exchange(request: Request) -> Response:
    body = await _json_body(request)
    oauth_service: StravaOAuthService = request.app.state.oauth_service
    session = await oauth_service.create_session_from_code(body.get("code"))

    athlete = Athlete.model_validate(session.athlete) if session.athlete else None
    return JSONResponse(
        {
            "athlete": athlete.public_profile() if athlete else None,
            "session_id": session.session_id,
        }
    )


async def disconnect(request: Request) -> Response:
    try:
        body = await _json_body(request)
    except ValidationError:
        body = {}
    session_id = body.get("session_id")
    if isinstance(session_id, str):
        session_store: SessionStore = request.app.state.session_store
        await session_store.remove_session(session_id)
    return JSONResponse({"success": True})


async def list_activities(request: Request) -> Response:
    session_store: SessionStore = request.app.state.session_store
    session = await session_store.get_active_session(request.query_params.get("sessionId"))
    page = _int_param(request, "page", 1)
    per_page = _int_param(request, "per_page", StravaClient.DEFAULT_PER_PAGE)

    async with _strava_client(request, session) as client:
        activities = await client.list_activities(page=page, per_page=per_page)
    return JSONResponse(activities)


async def get_athlete(request: Request) -> Response:
    session_store: SessionStore = request.app.state.session_store
    session = await session_store.get_active_session(request.query_params.get("sessionId"))

    async with _strava_client(request, session) as client:
        athlete = await client.get_athlete()
    return JSONResponse(athlete)


# Medals


async def issue_medal(request: Request) -> Response:
    body = await _json_body(request)
    try:
        medal_request = MedalRequest.model_validate(body)
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in error["loc"]) for error in exc.errors())
        raise ValidationError(f"Invalid medal request: {fields}") from exc

    session_store: SessionStore = request.app.state.session_store
    session = await session_store.get_active_session(medal_request.session_id)
    races: RaceCatalog = request.app.state.races
    race = races.get(medal_request.race_data.id)

    issuer: MedalIssuer = request.app.state.medal_issuer
    medal = await issuer.issue(
        session, race, medal_request.activity_data, medal_request.completion_data
    )
    return JSONResponse(
        {
            "success": True,
            "medalCode": medal.medal_code,
            "verificationId": medal.verification_id,
            "medal": medal.to_json(),
        }
    )


async def verify_medal(request: Request) -> Response:
    issuer: MedalIssuer = request.app.state.medal_issuer
    medal = await issuer.verify(request.path_params["medal_code"])
    intact = issuer.check_integrity(medal)
    if not intact:
        logger.warning("Integrity check failed for medal %s", medal.medal_code)
    return JSONResponse(
        {
            "verified": True,
            "integrityValid": intact,
            "medal": medal.to_json(),
            "message": f"Medal verified: {medal.race_name} completed by {medal.athlete_name}",
        }
    )


async def athlete_medals(request: Request) -> Response:
    try:
        athlete_id = int(request.path_params["athlete_id"])
    except ValueError as exc:
        raise ValidationError("athleteId must be an integer") from exc

    issuer: MedalIssuer = request.app.state.medal_issuer
    medals = await issuer.list_by_athlete(athlete_id)
    return JSONResponse(
        {"success": True, "medals": [medal.to_json() for medal in medals], "count": len(medals)}
    )


async def medal_stats(request: Request) -> Response:
    issuer: MedalIssuer = request.app.state.medal_issuer
    stats = await issuer.stats()
    return JSONResponse({"success": True, "stats": stats.to_json()})


async def list_races(request: Request) -> Response:
    races: RaceCatalog = request.app.state.races
    return JSONResponse({"races": races.as_json()})


async def health(request: Request) -> Response:
    return JSONResponse({"status": "ok"})


# Error mapping


async def runquest_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, RunQuestError):
        return await unhandled_error_handler(request, exc)
    content: dict[str, Any] = {"error": exc.message}
    if isinstance(exc, MedalNotFound):
        content["message"] = f"No medal found with code {exc.medal_code}"
    return JSONResponse(content, status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
    logger.error("Unhandled exception occurred: %s", exc)
    logger.error(traceback.format_exc())
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def build_stores(config: RunQuestConfig) -> tuple[SessionStore, MedalStore]:
    """Instantiate the session and medal stores for the configured backend."""
    if config.runquest_storage_backend == "dynamodb":
        if not config.runquest_dynamodb_table:
            raise ConfigurationError("RUNQUEST_DYNAMODB_TABLE is not configured")
        table = DynamoItemTable(config.runquest_dynamodb_table, region_name=config.aws_region)
        logger.info("Using DynamoDB table %s", table.table_name)
        return DynamoSessionStore(table), DynamoMedalStore(table)
    return SessionStore(), MedalStore()


def create_app(
    config: RunQuestConfig,
    *,
    session_store: SessionStore | None = None,
    medal_store: MedalStore | None = None,
    medal_issuer: MedalIssuer | None = None,
    races: RaceCatalog | None = None,
) -> Starlette:
    """Create the RunQuest API application.

    Stores default to the backend selected by ``config``; tests pass their own.
    """
    if session_store is None or medal_store is None:
        default_sessions, default_medals = build_stores(config)
        session_store = session_store or default_sessions
        medal_store = medal_store or default_medals

    if medal_issuer is None:
        signing_key = config.runquest_medal_signing_key
        medal_issuer = MedalIssuer(
            medal_store,
            signing_key=signing_key.get_secret_value().encode() if signing_key else None,
        )

    routes = [
        Route("/api/strava/oauth", oauth_exchange, methods=["POST"]),
        Route("/api/strava/disconnect", disconnect, methods=["POST"]),
        Route("/api/strava/activities", list_activities, methods=["GET"]),
        Route("/api/strava/athlete", get_athlete, methods=["GET"]),
        Route("/api/medals", issue_medal, methods=["POST"]),
        Route("/api/medals/verify/{medal_code}", verify_medal, methods=["GET"]),
        Route("/api/medals/athlete/{athlete_id}", athlete_medals, methods=["GET"]),
        Route("/api/medals/stats", medal_stats, methods=["GET"]),
        Route("/api/races", list_races, methods=["GET"]),
        Route("/health", health, methods=["GET"]),
    ]
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    ]

    app = Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={
            RunQuestError: runquest_error_handler,
            Exception: unhandled_error_handler,
        },
    )
    app.state.config = config
    app.state.session_store = session_store
    app.state.oauth_service = StravaOAuthService(config, session_store)
    app.state.medal_issuer = medal_issuer
    app.state.races = races or load_races(config.runquest_races_file)
    return app
