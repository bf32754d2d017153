"""Duplicate-report detection endpoint for operators.

Operators post the disaster records they are triaging; pending records
are grouped by :func:`src.services.duplicates.group_duplicates` and each
group comes back with its anchor report first and scored duplicates
nested under it.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.middleware.auth import require_admin_api_key
from src.models.disaster import DisasterReport
from src.services.duplicates import GROUPING_THRESHOLD, group_duplicates, pending_reports

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/duplicates", tags=["duplicates"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class DetectDuplicatesRequest(BaseModel):
    reports: list[DisasterReport] = Field(default_factory=list)
    pending_only: bool = Field(
        default=True,
        description="Only consider reports whose status is 'pending'.",
    )


class DuplicateEntry(BaseModel):
    report: DisasterReport
    score: int
    probability: str


class DuplicateGroupResponse(BaseModel):
    main: DisasterReport
    is_duplicate_group: bool
    duplicates: list[DuplicateEntry]


class DetectDuplicatesResponse(BaseModel):
    considered: int
    threshold: int
    duplicate_groups: int
    groups: list[DuplicateGroupResponse]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/detect",
    response_model=DetectDuplicatesResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def detect_duplicates(body: DetectDuplicatesRequest) -> DetectDuplicatesResponse:
    """Score and group likely duplicate reports (same type, close in space and time)."""
    reports = pending_reports(body.reports) if body.pending_only else list(body.reports)
    groups = group_duplicates(reports)

    response = DetectDuplicatesResponse(
        considered=len(reports),
        threshold=GROUPING_THRESHOLD,
        duplicate_groups=sum(1 for g in groups if g.is_duplicate_group),
        groups=[
            DuplicateGroupResponse(
                main=g.main,
                is_duplicate_group=g.is_duplicate_group,
                duplicates=[
                    DuplicateEntry(report=m.report, score=m.score, probability=m.probability)
                    for m in g.duplicates
                ],
            )
            for g in groups
        ],
    )
    logger.info(
        "duplicates.detected",
        received=len(body.reports),
        considered=response.considered,
        duplicate_groups=response.duplicate_groups,
    )
    return response
