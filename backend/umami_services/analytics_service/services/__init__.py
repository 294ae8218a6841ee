"""
Business Logic Services for Analytics Service.

This package contains report evaluation (from scratch or incremental over
cached rollup buckets) and cooperative cancellation of long scans.
"""

from .cancellation import CancellationToken
from .report_service import ReportParameters, ReportService, RollupCache

__all__ = ["CancellationToken", "ReportParameters", "ReportService", "RollupCache"]
