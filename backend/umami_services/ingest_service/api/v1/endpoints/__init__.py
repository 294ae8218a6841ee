"""
Ingest Service API v1 Endpoints Module

Module Structure:
    - send: tracker hit endpoints
"""
