"""
Ingest Service API v1 Models Module

Exported Models:
    - SendRequest / BatchSendRequest: tracker hits
    - HitPayload: payload of one hit
    - SendResponse / HitResult: per-hit outcomes
"""

from .hits import BatchSendRequest, HitPayload, HitResult, SendRequest, SendResponse

__all__ = ["BatchSendRequest", "HitPayload", "HitResult", "SendRequest", "SendResponse"]
