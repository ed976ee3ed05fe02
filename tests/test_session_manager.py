"""Tests for the session lifecycle manager."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from conftest import MOBILE_UA
from tenantgate.models.context import RequestMeta
from tenantgate.models.tenant import SessionState, User
from tenantgate.services.session_manager import SessionLifecycleManager, cleanup_all_tenants


def _current(manager, user_id):
    return [session for session in manager.get_active_sessions(user_id) if session.is_current]


class TestCreateSession:

    def test_new_session_is_current(self, manager, user_id, desktop_meta, clock):
        session = manager.create_session(user_id, desktop_meta, "s1")

        assert session.is_current is True
        assert session.state is SessionState.CURRENT
        assert session.ip_address == "192.168.1.1"
        assert session.device_type == "desktop"
        assert session.browser == "Chrome 91.0.4472.124"
        assert session.platform == "Windows 10.0"
        assert session.last_activity == clock.now

    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_exactly_one_current_session_and_it_is_the_newest(self, manager, user_id, desktop_meta, clock, count):
        for index in range(count):
            clock.advance(minutes=1)
            manager.create_session(user_id, desktop_meta, f"s{index}")

        current = _current(manager, user_id)
        assert len(current) == 1
        assert current[0].session_id == f"s{count - 1}"
        assert len(manager.get_active_sessions(user_id)) == count

    def test_concurrent_logins_leave_one_current_session(self, manager, user_id, desktop_meta):
        barrier = threading.Barrier(8)

        def login(index):
            barrier.wait()
            return manager.create_session(user_id, desktop_meta, f"s{index}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            sessions = list(pool.map(login, range(8)))

        assert len(sessions) == 8
        assert len(manager.get_active_sessions(user_id)) == 8
        assert len(_current(manager, user_id)) == 1

    def test_demotion_is_per_user(self, manager, make_user, desktop_meta):
        alice = make_user("alice@example.com")
        bob = make_user("bob@example.com")

        manager.create_session(alice, desktop_meta, "alice-1")
        manager.create_session(bob, desktop_meta, "bob-1")

        assert [s.session_id for s in _current(manager, alice)] == ["alice-1"]
        assert [s.session_id for s in _current(manager, bob)] == ["bob-1"]

    def test_updates_user_last_login(self, manager, handle, user_id, clock):
        manager.create_session(user_id, RequestMeta("10.0.0.1", MOBILE_UA), "s1")

        with handle.session() as db:
            user = db.get(User, user_id)
            assert user.last_login_ip == "10.0.0.1"
            assert user.last_login_at == clock.now

    def test_location_is_stored(self, handle, user_id, desktop_meta):
        manager = SessionLifecycleManager(handle, locate=lambda ip: {"city": "Tehran", "country": "Iran"})
        session = manager.create_session(user_id, desktop_meta, "s1")

        assert session.location == {"city": "Tehran", "country": "Iran"}
        assert session.location_string == "Tehran, Iran"
        assert session.device_info == "Chrome 91.0.4472.124 - Windows 10.0"

    def test_unknown_user(self, manager, desktop_meta):
        with pytest.raises(ValueError):
            manager.create_session(999, desktop_meta, "s1")


class TestActivityAndQueries:

    def test_get_active_sessions_newest_activity_first(self, manager, user_id, desktop_meta, clock):
        manager.create_session(user_id, desktop_meta, "s1")
        clock.advance(minutes=5)
        manager.create_session(user_id, desktop_meta, "s2")
        clock.advance(minutes=5)
        assert manager.update_activity("s1") is True

        sessions = manager.get_active_sessions(user_id)
        assert [s.session_id for s in sessions] == ["s1", "s2"]
        assert sessions[0].last_activity == clock.now

    def test_update_activity_ignores_logged_out_sessions(self, manager, user_id, desktop_meta):
        manager.create_session(user_id, desktop_meta, "s1")
        manager.logout_session(user_id, "s1")
        assert manager.update_activity("s1") is False

    def test_find_active_session(self, manager, make_user, user_id, desktop_meta):
        manager.create_session(user_id, desktop_meta, "s1")
        other = make_user("bob@example.com")

        assert manager.find_active_session(user_id, "s1").session_id == "s1"
        assert manager.find_active_session(other, "s1") is None
        assert manager.find_active_session(user_id, "missing") is None

    def test_recent_sessions_excludes_given_session(self, manager, user_id, desktop_meta, clock):
        start = clock.now
        manager.create_session(user_id, desktop_meta, "s1")
        clock.advance(minutes=10)
        manager.create_session(user_id, desktop_meta, "s2")

        recent = manager.recent_sessions(user_id, since=start, exclude_session_id="s2")
        assert [s.session_id for s in recent] == ["s1"]
        assert manager.recent_sessions(user_id, since=clock.now + timedelta(minutes=1)) == []


class TestLogout:

    def test_logout_session(self, manager, user_id, desktop_meta, clock):
        manager.create_session(user_id, desktop_meta, "s1")

        assert manager.logout_session(user_id, "s1") is True
        session = manager.get_session("s1")
        assert session.state is SessionState.LOGGED_OUT
        assert session.is_current is False
        assert session.logged_out_at == clock.now
        assert manager.logout_session(user_id, "s1") is False

    def test_logout_other_sessions_keeps_only_kept_session(self, manager, user_id, desktop_meta):
        for session_id in ("s1", "s2", "s3", "s4"):
            manager.create_session(user_id, desktop_meta, session_id)
        manager.logout_session(user_id, "s1")

        count = manager.logout_other_sessions(user_id, keep_session_id="s3")

        assert count == 2
        assert [s.session_id for s in manager.get_active_sessions(user_id)] == ["s3"]

    def test_logout_other_sessions_with_inactive_keep(self, manager, user_id, desktop_meta):
        for session_id in ("s1", "s2", "s3"):
            manager.create_session(user_id, desktop_meta, session_id)
        manager.logout_session(user_id, "s1")

        assert manager.logout_other_sessions(user_id, keep_session_id="s1") == 2
        assert manager.get_active_sessions(user_id) == []

    def test_logout_all_sessions(self, manager, user_id, desktop_meta):
        for session_id in ("s1", "s2"):
            manager.create_session(user_id, desktop_meta, session_id)

        assert manager.logout_all_sessions(user_id) == 2
        assert manager.get_active_sessions(user_id) == []


class TestCleanup:

    def test_cleanup_expired_sessions(self, manager, user_id, desktop_meta, clock):
        manager.create_session(user_id, desktop_meta, "old")
        clock.advance(minutes=130)
        manager.create_session(user_id, desktop_meta, "fresh")

        assert manager.cleanup_expired_sessions(timeout_minutes=120) == 1
        assert manager.get_session("old").state is SessionState.LOGGED_OUT
        assert manager.get_session("fresh").state is SessionState.CURRENT

    def test_cleanup_all_tenants_counts_per_tenant(self, directory, registry, make_tenant, desktop_meta, clock):
        acme = make_tenant("acme")
        make_tenant("beta")
        handle = registry.get(acme)
        with handle.session() as db:
            db.add(User(id=1, name="Alice", email="alice@example.com"))

        clock.advance(minutes=-180)
        SessionLifecycleManager(handle, locate=lambda ip: None, clock=clock).create_session(1, desktop_meta, "stale")

        results = cleanup_all_tenants(directory, registry, timeout_minutes=120)

        assert results == {"acme": 1, "beta": 0}
