"""
mediastore - storage access and metadata sync for a large-file transfer server.

This package contains the complete application:
- core: Framework-agnostic object models and response classification
- infrastructure: Object store signing and the metadata API client
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
