"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Object store signing and redirects (S3-compatible)
- metadata: The authoritative metadata API

These wrappers translate between external formats and our domain models.
"""
