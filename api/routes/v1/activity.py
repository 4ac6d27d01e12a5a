"""
api/routes/v1/activity.py -- Activity log browsing for administrators.

Routes:
  GET /api/v1/activity-logs   -- paginated, filterable, newest first (system.logs)

The auditor caps limit at 100; the Query bounds below reject larger values up
front with a 422 instead of silently clamping.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import ActivityLogOut, ActivityLogPage, Pagination
from auth.audit import ActivityAuditor
from auth.dependencies import require_permission
from auth.models import Identity

router = APIRouter()


@router.get("/activity-logs", response_model=ActivityLogPage)
def list_activity_logs(
    request: Request,
    user_id: int | None = Query(default=None),
    action: str | None = Query(default=None, max_length=50),
    entity: str | None = Query(default=None, max_length=100),
    entity_id: str | None = Query(default=None, max_length=100),
    start_date: str | None = Query(default=None, max_length=40),
    end_date: str | None = Query(default=None, max_length=40),
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: Identity = Depends(require_permission("system.logs")),
) -> ActivityLogPage:
    auditor: ActivityAuditor = request.app.state.auditor
    result = auditor.list_activity(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        start=start_date,
        end=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    return ActivityLogPage(
        data=[ActivityLogOut.from_log(log) for log in result.items],
        pagination=Pagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
    )
