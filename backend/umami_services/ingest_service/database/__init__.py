"""
Ingest Service Database Module

Module Structure:
    - session_repository: session lookups and the idempotent session insert

Event, attribute and revenue rows are added through the ORM inside the
writer's unit of work.
"""
