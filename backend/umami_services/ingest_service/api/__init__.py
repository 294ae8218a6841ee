"""
Ingest Service API Module

Module Structure:
    - dependencies: Shared FastAPI dependencies (settings, writer, client address)
    - v1: Version 1 API implementation
"""
