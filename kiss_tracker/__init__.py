"""Kiss Tracker: shareable tracking links with live status updates."""

__version__ = "1.0.0"
