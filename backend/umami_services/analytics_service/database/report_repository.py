"""
Report and Segment Repositories for Analytics Service

Saved report and segment definitions of one tenant. Every operation takes the
tenant scope; a definition of another tenant is indistinguishable from a
missing one.

Example:
    ```python
    repo = ReportRepository(session)
    report = repo.create(scope, user_id, "metrics", "Top pages", parameters)
    reports = repo.list(scope)
    ```
"""

from __future__ import annotations

from typing import Any
import uuid

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from umami_common.exceptions import InvalidInput
from umami_common.models import SEGMENT_TYPE_COHORT, SEGMENT_TYPE_SEGMENT, Report, Segment
from umami_common.security import TenantScope, parse_uuid
from umami_common.time import now_utc

SEGMENT_TYPES = (SEGMENT_TYPE_SEGMENT, SEGMENT_TYPE_COHORT)


class ReportRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, scope: TenantScope) -> list[Report]:
        stmt = (
            select(Report)
            .where(Report.website_id == scope.website_id)
            .order_by(Report.name, Report.report_id)
        )
        return list(self.session.scalars(stmt))

    def get(self, scope: TenantScope, report_id: Any) -> Report | None:
        stmt = select(Report).where(
            Report.website_id == scope.website_id,
            Report.report_id == parse_uuid(report_id, "report_id"),
        )
        return self.session.scalars(stmt).first()

    def create(
        self,
        scope: TenantScope,
        user_id: uuid.UUID,
        report_type: str,
        name: str,
        parameters: dict[str, Any],
        description: str = "",
    ) -> Report:
        report = Report(
            report_id=uuid.uuid4(),
            user_id=user_id,
            website_id=scope.website_id,
            type=report_type,
            name=name,
            description=description,
            parameters=parameters,
            created_at=now_utc(),
        )
        self.session.add(report)
        self.session.flush()
        logger.info(f"Created report {report.report_id} for website {scope.website_id}")
        return report

    def update(self, scope: TenantScope, report_id: Any, **fields: Any) -> Report | None:
        report = self.get(scope, report_id)
        if report is None:
            return None
        for name in ("type", "name", "description", "parameters"):
            if fields.get(name) is not None:
                setattr(report, name, fields[name])
        report.updated_at = now_utc()
        self.session.flush()
        return report

    def delete(self, scope: TenantScope, report_id: Any) -> bool:
        report = self.get(scope, report_id)
        if report is None:
            return False
        self.session.delete(report)
        self.session.flush()
        logger.info(f"Deleted report {report.report_id} of website {scope.website_id}")
        return True


class SegmentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, scope: TenantScope, segment_type: str | None = None) -> list[Segment]:
        stmt = select(Segment).where(Segment.website_id == scope.website_id)
        if segment_type:
            stmt = stmt.where(Segment.type == segment_type)
        return list(self.session.scalars(stmt.order_by(Segment.name, Segment.segment_id)))

    def get(self, scope: TenantScope, segment_id: Any) -> Segment | None:
        stmt = select(Segment).where(
            Segment.website_id == scope.website_id,
            Segment.segment_id == parse_uuid(segment_id, "segment_id"),
        )
        return self.session.scalars(stmt).first()

    def create(
        self,
        scope: TenantScope,
        segment_type: str,
        name: str,
        parameters: dict[str, Any],
    ) -> Segment:
        if segment_type not in SEGMENT_TYPES:
            msg = f"Unknown segment type {segment_type!r}"
            raise InvalidInput(msg, field="type")
        segment = Segment(
            segment_id=uuid.uuid4(),
            website_id=scope.website_id,
            type=segment_type,
            name=name,
            parameters=parameters,
            created_at=now_utc(),
        )
        self.session.add(segment)
        self.session.flush()
        logger.info(f"Created {segment_type} {segment.segment_id} for website {scope.website_id}")
        return segment

    def update(self, scope: TenantScope, segment_id: Any, **fields: Any) -> Segment | None:
        segment = self.get(scope, segment_id)
        if segment is None:
            return None
        if fields.get("type") is not None and fields["type"] not in SEGMENT_TYPES:
            msg = f"Unknown segment type {fields['type']!r}"
            raise InvalidInput(msg, field="type")
        for name in ("type", "name", "parameters"):
            if fields.get(name) is not None:
                setattr(segment, name, fields[name])
        segment.updated_at = now_utc()
        self.session.flush()
        return segment

    def delete(self, scope: TenantScope, segment_id: Any) -> bool:
        segment = self.get(scope, segment_id)
        if segment is None:
            return False
        self.session.delete(segment)
        self.session.flush()
        return True
