"""Error taxonomy for the RunQuest backend.

Every error raised inside a request carries the HTTP status code it maps to;
the application turns them into ``{"error": message}`` JSON bodies.
"""


class RunQuestError(Exception):
    """Base exception for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing."""


class ValidationError(RunQuestError):
    """Missing or malformed caller input."""

    status_code = 400


class MissingCode(ValidationError):
    def __init__(self) -> None:
        super().__init__("Authorization code is required")


class InvalidOrExpiredCode(RunQuestError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Invalid authorization code or expired")


class UnauthorizedClient(RunQuestError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Unauthorized - check your app credentials")


class UpstreamFailure(RunQuestError):
    """Strava answered with a non-success status or could not be reached."""

    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class UpstreamAuthRejected(RunQuestError):
    """Strava reported an authentication error inside a successful response."""

    status_code = 400


class UpstreamTimeout(RunQuestError):
    status_code = 504

    def __init__(self, message: str = "Strava did not respond in time"):
        super().__init__(message)


class SessionNotFound(RunQuestError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Session not found")


class SessionExpired(RunQuestError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Session expired")


class MedalNotFound(RunQuestError):
    status_code = 404

    def __init__(self, medal_code: str):
        self.medal_code = medal_code
        super().__init__("Medal not found")


class DistanceRequirementNotMet(RunQuestError):
    status_code = 400

    def __init__(self, required_km: float, actual_km: float):
        self.required_km = required_km
        self.actual_km = actual_km
        super().__init__(
            f"Activity distance {actual_km:.2f}km does not meet the "
            f"{required_km:g}km requirement"
        )


class DuplicateMedal(RunQuestError):
    status_code = 409

    def __init__(self, medal_code: str):
        self.medal_code = medal_code
        super().__init__(f"Medal already issued for this race ({medal_code})")


class InternalError(RunQuestError):
    status_code = 500
