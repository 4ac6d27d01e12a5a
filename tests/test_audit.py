"""
tests/test_audit.py -- Unit tests for auth/audit.py.

Covers:
  - record() stores client metadata and JSON details
  - record() swallows (and logs) storage failures
  - list_activity() filters, search, date range, pagination, newest first
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from auth.audit import ActivityAuditor
from auth.models import Action, ClientInfo


def test_record_stores_row(auditor):
    auditor.record(
        Action.LOGIN_SUCCESS,
        entity="User",
        entity_id=5,
        user_id=5,
        details={"active_role": "SALES"},
        client=ClientInfo(ip_address="192.0.2.10", user_agent="ua"),
    )
    page = auditor.list_activity()
    assert page.total == 1
    log = page.items[0]
    assert log.action == "LOGIN_SUCCESS"
    assert log.entity_id == "5"
    assert log.details == {"active_role": "SALES"}
    assert log.ip_address == "192.0.2.10"
    assert log.created_at


def test_record_never_raises(caplog):
    engine = MagicMock()
    engine.connect.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
    broken = ActivityAuditor(engine)
    with caplog.at_level(logging.ERROR, logger="harbordesk.audit"):
        broken.record(Action.LOGOUT, entity="User", user_id=1)
    assert "Failed to record activity LOGOUT" in caplog.text


def test_filters_and_search(auditor):
    auditor.record(Action.LOGIN_SUCCESS, entity="User", user_id=1, client=ClientInfo(ip_address="10.1.1.1"))
    auditor.record(Action.LOGIN_FAILED, entity="User", user_id=None, client=ClientInfo(ip_address="10.9.9.9"))
    auditor.record(Action.ROLE_SWITCH, entity="UserSession", entity_id=3, user_id=1)

    assert auditor.list_activity(user_id=1).total == 2
    assert auditor.list_activity(action="login").total == 2
    assert auditor.list_activity(entity="usersession").total == 1
    assert auditor.list_activity(entity_id="3").total == 1
    assert auditor.list_activity(search="10.9").total == 1
    assert auditor.list_activity(search="switch").total == 1


def test_date_range(auditor):
    auditor.record(Action.LOGOUT, entity="User", user_id=1)
    assert auditor.list_activity(start="2000-01-01").total == 1
    assert auditor.list_activity(end="2000-01-01").total == 0
    assert auditor.list_activity(start="2999-01-01").total == 0


def test_pagination_newest_first(auditor):
    for i in range(5):
        auditor.record(Action.TOKEN_REFRESH, entity="UserSession", entity_id=i, user_id=1)

    first = auditor.list_activity(page=1, limit=2)
    assert first.total == 5
    assert first.pages == 3
    assert [log.entity_id for log in first.items] == ["4", "3"]

    last = auditor.list_activity(page=3, limit=2)
    assert [log.entity_id for log in last.items] == ["0"]


def test_limit_is_capped(auditor):
    page = auditor.list_activity(limit=10_000, page=0)
    assert page.limit == 100
    assert page.page == 1
