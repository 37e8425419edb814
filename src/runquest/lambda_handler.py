"""AWS Lambda handler for the RunQuest API.

This module wraps the Starlette app with Mangum for AWS Lambda deployment.
The app is built once per container so in-memory caches survive warm starts.
"""

from __future__ import annotations

from typing import Any

from mangum import Mangum

from .app import create_app
from .config import load_config

_handler: Mangum | None = None


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    global _handler
    if _handler is None:
        _handler = Mangum(create_app(load_config()), lifespan="off")

    return _handler(event, context)
