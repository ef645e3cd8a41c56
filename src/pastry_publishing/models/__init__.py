"""
# Data Models Package

Pydantic models for the governance core, organized by domain:

- **`governance_models`**: Roles, actors, sites and content items.
- **`engagement_models`**: Interactions and threaded comments.
- **`analytics_models`**: View records, visitor sessions and analytics summaries.

Request models (`*Request`) sanitize their input with `bleach` in field validators; the remaining
models mirror stored documents.
"""
