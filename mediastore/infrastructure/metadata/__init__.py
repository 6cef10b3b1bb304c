"""
Metadata API integration.

Fetches, reserves, and verifies object metadata records against the
authoritative metadata API. Includes an in-memory mode for local
development.
"""
