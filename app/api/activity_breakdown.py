"""Completion-range breakdown endpoints.

    GET /api/activity-breakdown                              every course
    GET /api/activity-breakdown/{course_id}                  one course
    GET /api/activity-breakdown/{course_id}/range/{range_key} one bucket

``?policy=percentage|fixed_width`` overrides COMPLETION_BUCKET_POLICY.
The policy used is echoed in every response.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query

from app.analytics.bucketing import BucketPolicy
from app.analytics.reports import ReportBuilder
from app.api.dependencies import get_report_builder, require_user
from app.api.responses import Envelope, ok
from app.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/activity-breakdown", tags=["activity-breakdown"])

CourseId = Annotated[int, Path(ge=1)]
PolicyParam = Annotated[BucketPolicy | None, Query()]


@router.get("", response_model=Envelope)
async def all_courses_breakdown(
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
    policy: PolicyParam = None,
) -> Envelope:
    data = await builder.build_all_courses_completion_breakdown(
        principal.user_id, policy=policy
    )
    logger.info("Activity breakdown for %d courses", len(data["courses"]))
    return ok(data, "Activity breakdown retrieved successfully")


@router.get("/{course_id}", response_model=Envelope)
async def course_breakdown(
    course_id: CourseId,
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
    policy: PolicyParam = None,
) -> Envelope:
    name = await builder.resolve_course_name(principal.user_id, course_id)
    breakdown = await builder.build_course_completion_breakdown(
        course_id, policy=policy, course_name=name
    )
    return ok(breakdown.to_dict(), "Course activity breakdown retrieved successfully")


@router.get("/{course_id}/range/{range_key}", response_model=Envelope)
async def students_in_range(
    course_id: CourseId,
    range_key: str,
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
    policy: PolicyParam = None,
) -> Envelope:
    name = await builder.resolve_course_name(principal.user_id, course_id)
    data = await builder.build_students_in_range(
        course_id, range_key, policy=policy, course_name=name
    )
    logger.info(
        "Found %d students in range=%s course_id=%s", data["count"], range_key, course_id
    )
    return ok(data, f'Students in "{data["rangeLabel"]}" retrieved successfully')
