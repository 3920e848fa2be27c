"""HTTP API for the tracking service."""
