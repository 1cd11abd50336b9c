"""User-facing account endpoints."""
