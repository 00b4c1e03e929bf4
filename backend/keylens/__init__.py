"""Keylens: analytics query service for API key, request log and ratelimit dashboards."""

__version__ = "1.0.0"
