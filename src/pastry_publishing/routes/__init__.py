"""Request-boundary helpers for FastAPI routes."""
