"""
auth/audit.py -- Activity Auditor: append-only log of security events.

Every component reports login success / failure, logout, role switches,
refreshes, evictions, password resets and role grants here. Two rules:

  1. Rows are only ever inserted. There is no update or delete path.
  2. record() never raises. A broken audit sink must not block
     authentication, so any failure is logged locally and swallowed.

list_activity() backs the admin activity-log view: filters on user, action,
entity, entity id, date range and a free-text search over action / entity /
IP address, newest first, page/limit pagination.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, or_, select
from sqlalchemy.engine import Engine

from auth.models import Action, ActivityLog, ClientInfo
from auth.schema import activity_logs, now_iso

logger = logging.getLogger("harbordesk.audit")


@dataclass
class ActivityPage:
    items: list[ActivityLog] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


class ActivityAuditor:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(
        self,
        action: Action | str,
        *,
        entity: str,
        entity_id: int | str | None = None,
        user_id: int | None = None,
        details: dict | None = None,
        client: ClientInfo | None = None,
    ) -> None:
        """Append one activity row. Failures are logged, never raised."""
        action_code = action.value if isinstance(action, Action) else action
        client = client or ClientInfo()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    activity_logs.insert().values(
                        user_id=user_id,
                        action=action_code,
                        entity=entity,
                        entity_id=str(entity_id) if entity_id is not None else None,
                        details=details or {},
                        ip_address=client.ip_address,
                        user_agent=client.user_agent,
                        created_at=now_iso(),
                    )
                )
                conn.commit()
        except Exception:
            logger.exception("Failed to record activity %s for user_id=%s", action_code, user_id)

    def list_activity(
        self,
        *,
        user_id: int | None = None,
        action: str | None = None,
        entity: str | None = None,
        entity_id: str | None = None,
        start: str | None = None,
        end: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ActivityPage:
        """Return one page of activity rows matching every given filter.

        action / entity / search are case-insensitive substring matches;
        start / end are inclusive ISO timestamps (a bare date such as
        "2026-01-31" works for start; for end pass a full timestamp or the
        following day).
        """
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        conditions = []
        if user_id is not None:
            conditions.append(activity_logs.c.user_id == user_id)
        if action:
            conditions.append(activity_logs.c.action.ilike(f"%{action}%"))
        if entity:
            conditions.append(activity_logs.c.entity.ilike(f"%{entity}%"))
        if entity_id:
            conditions.append(activity_logs.c.entity_id == str(entity_id))
        if start:
            conditions.append(activity_logs.c.created_at >= start)
        if end:
            conditions.append(activity_logs.c.created_at <= end)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    activity_logs.c.action.ilike(pattern),
                    activity_logs.c.entity.ilike(pattern),
                    activity_logs.c.ip_address.ilike(pattern),
                )
            )

        query = activity_logs.select()
        count_query = select(func.count()).select_from(activity_logs)
        for cond in conditions:
            query = query.where(cond)
            count_query = count_query.where(cond)

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(
                query.order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return ActivityPage(items=[_row_to_activity(r) for r in rows], total=total, page=page, limit=limit)


def _row_to_activity(row) -> ActivityLog:
    return ActivityLog(
        id=row.id,
        user_id=row.user_id,
        action=row.action,
        entity=row.entity,
        entity_id=row.entity_id,
        details=row.details or {},
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
