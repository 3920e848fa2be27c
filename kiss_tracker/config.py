"""
Central configuration for the tracking service.

Flat module-level constants shared by the API, the stores and the realtime
layer.  Deployment-specific values (port, URLs, connection strings) live in
``kiss_tracker.api.config.ApiSettings`` and are read from the environment.
"""
import os
from pathlib import Path

# ── Paths ──────────────────────────────────────────────────────────────
DEFAULT_DATA_DIR = Path.cwd() / "data"            # file-backed store location when KISS_TRACKER_DATA_DIR is unset
TRACKINGS_FILENAME = "trackings.json"
TRACK_RECORDS_FILENAME = "track_records.json"

# ── Identifiers & Credentials ─────────────────────────────────────────
TRACKING_NUMBER_LENGTH = 8                        # uppercase hex characters
UPDATE_KEY_LENGTH = 16                            # lowercase hex characters
MAX_TRACKING_NUMBER_ATTEMPTS = 5                  # regenerate on collision before giving up with 409

# ── Tracking Defaults ─────────────────────────────────────────────────
DEFAULT_CREATOR_TIMEZONE = "Europe/Zurich"
DEFAULT_CREATOR_LOCALE = "en-CH"
DELIVERED_LOCATION = "Delivered"                  # location label appended when status becomes Delivered

# ── Realtime ──────────────────────────────────────────────────────────
HEARTBEAT_INTERVAL_SECONDS = 30.0
SUBSCRIBER_QUEUE_SIZE = 100                       # frames buffered per SSE subscriber before it is considered dead

# ── Logging ───────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("KISS_TRACKER_LOG_LEVEL", "INFO")    # "DEBUG", "INFO", "WARNING", "ERROR"
LOG_FORMAT = os.environ.get("KISS_TRACKER_LOG_FORMAT", "structured")  # "structured" or "json"


# ── Config Validation ──────────────────────────────────────────────

def validate_config() -> list:
    """Check config for common misconfigurations.

    Returns a list of dicts: [{"level": "WARNING"|"ERROR", "message": str}].
    Called on server startup.
    """
    issues = []

    if LOG_FORMAT not in ("structured", "json"):
        issues.append({
            "level": "WARNING",
            "message": f"LOG_FORMAT={LOG_FORMAT!r} is not recognised; falling back to 'structured'.",
        })

    if LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        issues.append({
            "level": "WARNING",
            "message": f"LOG_LEVEL={LOG_LEVEL!r} is not a standard logging level; INFO will be used.",
        })

    if HEARTBEAT_INTERVAL_SECONDS <= 0:
        issues.append({
            "level": "ERROR",
            "message": "HEARTBEAT_INTERVAL_SECONDS must be positive.",
        })

    if not os.environ.get("DATABASE_URL") and not os.environ.get("KISS_TRACKER_DATABASE_URL"):
        issues.append({
            "level": "WARNING",
            "message": (
                "DATABASE_URL is not set. Records will be stored in JSON files, "
                "which is only suitable for a single process on persistent disk."
            ),
        })

    return issues
