"""Database Access Layer for Analytics Service.

This package provides the tenant-scoped repositories of the analytics
service: aggregate statistics, index-aware planning, and saved reports and
segments.
"""
