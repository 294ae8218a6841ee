"""
Common security utilities for tenant scoping and authorization.
"""

from .access import AccessContext, AccessLayer, TenantScope, parse_uuid

__all__ = ["AccessContext", "AccessLayer", "TenantScope", "parse_uuid"]
