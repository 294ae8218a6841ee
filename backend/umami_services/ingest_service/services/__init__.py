"""
Ingest Service Business Logic Package.

Available Services:
- IngestWriter: validates and persists batches of hits
- SessionResolver: maps hits to sessions and visits
- attribute_store: tagged-union attribute classification and rows
- attribution: URL, campaign and referrer parsing
"""

from .attribute_store import AttributeValue, DataType, flatten
from .ingest_writer import IngestResult, IngestWriter, RawHit
from .session_resolver import ClientAttributes, ResolvedSession, SessionResolver, compute_fingerprint

__all__ = [
    "AttributeValue",
    "ClientAttributes",
    "DataType",
    "IngestResult",
    "IngestWriter",
    "RawHit",
    "ResolvedSession",
    "SessionResolver",
    "compute_fingerprint",
    "flatten",
]
