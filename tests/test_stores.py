"""
tests/test_stores.py -- Integration tests for auth/store.py and auth/sessions.py.

Uses the per-test named in-memory SQLite DB from conftest.

Covers:
  - Email lookups are case-insensitive; unknown update fields rejected
  - Assignments load roles with permissions and menus, in assignment order
  - Suspended assignments disappear; reactivation keeps the original row
  - is_default is exclusive per user
  - Session matching requires token, is_active and an unexpired expiry
  - Rotation and termination are conditional single-row writes
  - Refresh token revocation (single and all)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import RefreshToken, User, UserSession
from auth.schema import iso, now_iso
from helpers import refresh_rows


def _future(minutes=15):
    return iso(datetime.now(timezone.utc) + timedelta(minutes=minutes))


def _past(minutes=1):
    return iso(datetime.now(timezone.utc) - timedelta(minutes=minutes))


def _user(user_store, email="Mixed.Case@HarborDesk.test"):
    return user_store.create_user(User(email=email, hashed_password="x", first_name="M", last_name="C"))


# ---------------------------------------------------------------------------
# UserStore
# ---------------------------------------------------------------------------


def test_email_is_stored_lowercase_and_matched_case_insensitively(user_store):
    uid = _user(user_store)
    assert user_store.get_by_email("mixed.case@harbordesk.test").id == uid
    assert user_store.get_by_email("MIXED.CASE@HARBORDESK.TEST").id == uid
    assert user_store.get_by_id(uid).email == "mixed.case@harbordesk.test"
    assert user_store.get_by_id(uid).password_changed_at is not None


def test_has_users(user_store):
    assert not user_store.has_users()
    _user(user_store)
    assert user_store.has_users()


def test_update_user_rejects_unknown_fields(user_store):
    uid = _user(user_store)
    with pytest.raises(ValueError):
        user_store.update_user(uid, hashed_password="sneaky")
    assert user_store.update_user(uid, first_name="Renamed")
    user = user_store.get_by_id(uid)
    assert user.first_name == "Renamed"
    assert user.hashed_password == "x"


def test_assignments_are_loaded_in_order(user_store, catalogue):
    uid = _user(user_store)
    user_store.assign_role(uid, catalogue["SALES"])
    user_store.assign_role(uid, catalogue["CUSTOMER"])
    assignments = user_store.get_assignments(uid)
    assert [a.role.name for a in assignments] == ["SALES", "CUSTOMER"]
    sales = assignments[0].role
    assert {p.name for p in sales.permissions} == {"bookings.view", "customers.view", "reports.view"}
    assert {m.menu.name for m in sales.menus} == {"dashboard", "bookings", "customers", "reports"}


def test_suspend_and_reactivate_keeps_order(user_store, catalogue):
    uid = _user(user_store)
    user_store.assign_role(uid, catalogue["SALES"])
    user_store.assign_role(uid, catalogue["CUSTOMER"])
    user_store.set_assignment_active(uid, catalogue["SALES"], False)
    assert [a.role.name for a in user_store.get_assignments(uid)] == ["CUSTOMER"]

    user_store.assign_role(uid, catalogue["SALES"])
    assert [a.role.name for a in user_store.get_assignments(uid)] == ["SALES", "CUSTOMER"]


def test_default_flag_is_exclusive(user_store, catalogue):
    uid = _user(user_store)
    user_store.assign_role(uid, catalogue["SALES"], is_default=True)
    user_store.assign_role(uid, catalogue["CUSTOMER"], is_default=True)
    defaults = [a.role.name for a in user_store.get_assignments(uid) if a.is_default]
    assert defaults == ["CUSTOMER"]


def test_bind_menu_replaces_flags(user_store, catalogue):
    uid = _user(user_store)
    user_store.assign_role(uid, catalogue["CUSTOMER"])
    menu = user_store.get_menu_by_name("bookings")
    user_store.bind_menu(catalogue["CUSTOMER"], menu.id, can_view=True, can_delete=True)
    binding = next(m for m in user_store.get_assignments(uid)[0].role.menus if m.menu.name == "bookings")
    assert (binding.can_view, binding.can_create, binding.can_delete) == (True, False, True)


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------


def test_find_live_session_matches_token_exactly(user_store, session_store):
    uid = _user(user_store)
    sid = session_store.create_session(UserSession(user_id=uid, token="tok-a", expires_at=_future()))
    assert session_store.find_live_session(uid, "tok-a").id == sid
    assert session_store.find_live_session(uid, "tok-b") is None
    assert session_store.find_live_session(uid + 1, "tok-a") is None


def test_expired_session_is_not_live(user_store, session_store):
    uid = _user(user_store)
    session_store.create_session(UserSession(user_id=uid, token="tok", expires_at=_past()))
    assert session_store.find_live_session(uid, "tok") is None
    assert [s.token for s in session_store.list_open_sessions(uid)] == ["tok"]
    # Still open: refresh can revive it, so it keeps its slot.
    assert session_store.latest_open_session(uid) is not None


def test_rotate_replaces_token(user_store, session_store):
    uid = _user(user_store)
    sid = session_store.create_session(UserSession(user_id=uid, token="old", expires_at=_future(), active_role="SALES"))
    assert session_store.rotate_session_token(sid, "new", _future(30), active_role="CUSTOMER")
    assert session_store.find_live_session(uid, "old") is None
    live = session_store.find_live_session(uid, "new")
    assert live.active_role == "CUSTOMER"


def test_terminated_session_cannot_rotate_or_touch(user_store, session_store):
    uid = _user(user_store)
    sid = session_store.create_session(UserSession(user_id=uid, token="tok", expires_at=_future()))
    assert session_store.terminate_session(sid, uid)
    assert not session_store.terminate_session(sid, uid)
    assert not session_store.rotate_session_token(sid, "new", _future())
    assert session_store.touch_session(sid) is None
    assert session_store.get_session(sid).is_active is False


def test_terminate_checks_owner(user_store, session_store):
    uid = _user(user_store)
    other = _user(user_store, email="other@harbordesk.test")
    sid = session_store.create_session(UserSession(user_id=uid, token="tok", expires_at=_future()))
    assert not session_store.terminate_session(sid, other)
    assert session_store.get_session(sid).is_active is True


def test_touch_session_stamps_activity(user_store, session_store):
    uid = _user(user_store)
    sid = session_store.create_session(UserSession(user_id=uid, token="tok", expires_at=_future()))
    before = session_store.get_session(sid).last_activity_at
    stamp = session_store.touch_session(sid)
    assert stamp is not None
    assert stamp >= before
    assert session_store.get_session(sid).last_activity_at == stamp


def test_refresh_token_revocation(user_store, session_store):
    uid = _user(user_store)
    for value in ("r1", "r2", "r3"):
        session_store.create_refresh_token(RefreshToken(user_id=uid, token=value, expires_at=_future(60)))
    assert session_store.revoke_refresh_token("r1")
    assert not session_store.revoke_refresh_token("r1")
    assert session_store.revoke_all_refresh_tokens(uid) == 2
    assert all(r.is_revoked for r in refresh_rows(session_store, uid))
    assert session_store.get_refresh_token("r2").is_revoked


def test_revoke_session_refresh_tokens_only_touches_that_session(user_store, session_store):
    uid = _user(user_store)
    kept = session_store.create_session(UserSession(user_id=uid, token="a", expires_at=_future()))
    dropped = session_store.create_session(UserSession(user_id=uid, token="b", expires_at=_future()))
    session_store.create_refresh_token(RefreshToken(user_id=uid, token="ra", session_id=kept, expires_at=_future(60)))
    session_store.create_refresh_token(RefreshToken(user_id=uid, token="rb", session_id=dropped, expires_at=_future(60)))

    assert session_store.revoke_session_refresh_tokens(dropped) == 1
    assert session_store.revoke_session_refresh_tokens(dropped) == 0
    assert session_store.get_refresh_token("rb").is_revoked
    assert not session_store.get_refresh_token("ra").is_revoked


def test_open_sessions_exclude_terminated_and_order_by_use(user_store, session_store):
    uid = _user(user_store)
    first = session_store.create_session(UserSession(user_id=uid, token="a", expires_at=_future()))
    second = session_store.create_session(UserSession(user_id=uid, token="b", expires_at=_past()))
    third = session_store.create_session(UserSession(user_id=uid, token="c", expires_at=_future()))
    session_store.terminate_session(third, uid)
    session_store.touch_session(first)

    assert [s.id for s in session_store.list_open_sessions(uid)] == [second, first]


def test_timestamps_sort_chronologically():
    earlier = now_iso()
    later = iso(datetime.now(timezone.utc) + timedelta(microseconds=1))
    assert earlier < later
