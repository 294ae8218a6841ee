"""
Ingest Service API v1 Module

Module Structure:
    - api: Router aggregation and endpoint registration
    - endpoints: HTTP endpoint handlers
    - models: Pydantic request/response schemas
"""
