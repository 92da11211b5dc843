"""Class-wise video/pdf engagement endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.analytics.reports import ReportBuilder
from app.api.dependencies import get_report_builder, require_user
from app.api.responses import Envelope, ok
from app.models.principal import Principal

router = APIRouter(prefix="/api/class-breakdown", tags=["class-breakdown"])


@router.get("", response_model=Envelope)
async def all_courses_engagement(
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
) -> Envelope:
    data = await builder.build_all_courses_engagement(principal.user_id)
    return ok(data, "Class breakdown retrieved successfully")


@router.get("/{course_id}", response_model=Envelope)
async def course_engagement(
    course_id: Annotated[int, Path(ge=1)],
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
) -> Envelope:
    name = await builder.resolve_course_name(principal.user_id, course_id)
    engagement = await builder.build_class_engagement_summary(course_id, course_name=name)
    return ok(engagement.to_dict(), "Course class breakdown retrieved successfully")
