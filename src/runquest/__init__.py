"""RunQuest backend: Strava OAuth proxy and virtual race medals."""

__version__ = "0.1.0"
