"""
Core domain for object transfer.

Framework-agnostic: object identity, transfer descriptors, storage path
layout, and the classification of metadata API responses. Nothing here
imports FastAPI, boto3, or httpx.
"""
