"""
Object storage integration.

Signs short-lived links against an S3-compatible bucket so clients
transfer object bytes directly. Includes mock mode for local development
without credentials.
"""
