"""The caller's own courses, plus raw completion data passthrough."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.analytics.reports import ReportBuilder
from app.api.dependencies import get_lms_client, get_report_builder, require_user
from app.api.responses import Envelope, ok
from app.models.principal import Principal
from app.services.lms_client import LmsClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/courses", tags=["courses"])

CourseId = Annotated[int, Path(ge=1)]


@router.get("", response_model=Envelope)
async def list_courses(
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
) -> Envelope:
    courses = await builder.list_courses_with_completion(principal.user_id)
    logger.info("Found %d courses for user=%s", len(courses), principal.user_id)
    return ok({"courses": courses}, "Courses retrieved successfully")


@router.get("/{course_id}", response_model=Envelope)
async def course_details(
    course_id: CourseId,
    principal: Annotated[Principal, Depends(require_user)],
    client: Annotated[LmsClient, Depends(get_lms_client)],
) -> Envelope:
    completion, activities, contents = await asyncio.gather(
        client.fetch_course_completion(course_id, principal.user_id),
        client.fetch_completion_status(course_id, principal.user_id),
        client.fetch_course_structure(course_id),
    )
    return ok(
        {
            "courseId": course_id,
            "completion": completion,
            "activities": activities,
            "contents": contents,
        },
        "Course details retrieved successfully",
    )


@router.get("/{course_id}/completion", response_model=Envelope)
async def course_completion(
    course_id: CourseId,
    principal: Annotated[Principal, Depends(require_user)],
    client: Annotated[LmsClient, Depends(get_lms_client)],
) -> Envelope:
    activities = await client.fetch_completion_status(course_id, principal.user_id)
    return ok({"activities": activities}, "Course completion retrieved successfully")
