"""
Analytics Service API Module

Module Structure:
    - dependencies: Shared FastAPI dependencies (caller, session, access, cache)
    - v1: Version 1 API implementation
"""
