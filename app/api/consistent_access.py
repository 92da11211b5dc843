"""Access-consistency report.

Query parameters:
    dateRange   today | yesterday | week | month | custom (default yesterday)
    startDate   YYYY-MM-DD, required for custom
    endDate     YYYY-MM-DD, required for custom
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.analytics.reports import ReportBuilder
from app.api.dependencies import get_report_builder, require_user
from app.api.responses import Envelope, ok
from app.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/consistent-access", tags=["consistent-access"])


@router.get("", response_model=Envelope)
async def consistent_access(
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
    date_range: Annotated[str, Query(alias="dateRange")] = "yesterday",
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
) -> Envelope:
    logger.info("Consistent access for range=%s", date_range)
    data = await builder.build_consistency_report(
        principal.user_id, date_range, start_date, end_date
    )
    return ok(data, "Consistent access data retrieved successfully")
