from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.analytics.reports import ReportBuilder
from app.api.dependencies import get_report_builder, require_user
from app.api.responses import Envelope, ok
from app.models.principal import Principal

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/dashboard", response_model=Envelope)
async def dashboard(
    principal: Annotated[Principal, Depends(require_user)],
    builder: Annotated[ReportBuilder, Depends(get_report_builder)],
    date_range: Annotated[str, Query(alias="dateRange")] = "yesterday",
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
    from_: Annotated[str | None, Query(alias="from")] = None,
    to: Annotated[str | None, Query()] = None,
) -> Envelope:
    # The frontend sends either from/to or startDate/endDate.
    data = await builder.build_dashboard_overview(
        principal.user_id, date_range, from_ or start_date, to or end_date
    )
    return ok(data, "Dashboard data retrieved successfully")
