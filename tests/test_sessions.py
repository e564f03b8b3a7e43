"""
Session store tests, driven by a controllable clock
"""
import pytest
from datetime import datetime, timedelta

from quickfund.modules.auth.sessions import SessionStore


class FakeClock:
    def __init__(self, now: datetime = datetime(2026, 5, 1, 12, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(
        max_sessions_per_user=2,
        session_timeout=timedelta(minutes=30),
        token_rotation_limit=3,
        clock=clock,
    )


def new_session(store, user_id=1, device_id="phone"):
    return store.create(
        user_id=user_id,
        device_id=device_id,
        ip_address="10.0.0.1",
        user_agent="pytest",
        refresh_token="refresh",
        access_token="access",
        role="user",
        permissions=["read:loans"],
    )


class TestCreate:

    @pytest.mark.unit
    def test_create(self, store, clock):
        session = new_session(store)

        assert session.is_active
        assert session.expires_at == clock.now + timedelta(minutes=30)
        assert store.get(session.id) is session
        assert len(store) == 1

    @pytest.mark.unit
    def test_oldest_session_evicted_at_limit(self, store, clock):
        events = []
        store.subscribe(lambda name, payload: events.append((name, payload)))

        first = new_session(store)
        clock.advance(minutes=1)
        second = new_session(store)
        clock.advance(minutes=1)
        third = new_session(store)

        assert store.get(first.id) is None
        assert {s.id for s in store.get_user_sessions(1)} == {second.id, third.id}

        [evicted] = [payload for name, payload in events if name == "session.limit_exceeded"]
        assert evicted["evicted_session_id"] == first.id

    @pytest.mark.unit
    def test_limit_is_per_user(self, store):
        new_session(store, user_id=1)
        new_session(store, user_id=1)
        new_session(store, user_id=2)

        assert len(store.get_user_sessions(1)) == 2
        assert len(store.get_user_sessions(2)) == 1


class TestValidate:

    @pytest.mark.unit
    def test_valid_session_slides_expiry(self, store, clock):
        session = new_session(store)
        clock.advance(minutes=20)

        assert store.validate(session.id, 1)
        assert session.expires_at == clock.now + timedelta(minutes=30)

    @pytest.mark.unit
    def test_unknown_session(self, store):
        assert not store.validate("missing", 1)

    @pytest.mark.unit
    def test_wrong_user_removes_session(self, store):
        session = new_session(store)

        assert not store.validate(session.id, 2)
        assert store.get(session.id) is None

    @pytest.mark.unit
    def test_expired_session_removed(self, store, clock):
        session = new_session(store)
        clock.advance(minutes=31)

        assert not store.validate(session.id, 1)
        assert store.get(session.id) is None

    @pytest.mark.unit
    def test_rotation_limit(self, store):
        session = new_session(store)
        for _ in range(3):
            store.refresh(session.id, "refresh", "access")

        assert not store.validate(session.id, 1)
        assert store.get(session.id) is None


class TestRefresh:

    @pytest.mark.unit
    def test_rotates_tokens(self, store, clock):
        session = new_session(store)
        clock.advance(minutes=5)

        refreshed = store.refresh(session.id, "refresh-2", "access-2", role="admin", permissions=["manage:sessions"])

        assert refreshed.refresh_token == "refresh-2"
        assert refreshed.access_token == "access-2"
        assert refreshed.token_rotation_count == 1
        assert refreshed.last_token_rotation == clock.now
        assert refreshed.role == "admin"
        assert refreshed.permissions == ["manage:sessions"]

    @pytest.mark.unit
    def test_unknown_session(self, store):
        assert store.refresh("missing", "r", "a") is None


class TestInvalidate:

    @pytest.mark.unit
    def test_invalidate(self, store):
        session = new_session(store)

        assert store.invalidate(session.id)
        assert not store.invalidate(session.id)

    @pytest.mark.unit
    def test_invalidate_user(self, store):
        new_session(store, user_id=1)
        new_session(store, user_id=1, device_id="laptop")
        other = new_session(store, user_id=2)

        assert store.invalidate_user(1) == 2
        assert store.get_user_sessions(1) == []
        assert store.get(other.id) is other

    @pytest.mark.unit
    def test_invalidate_device(self, store):
        new_session(store, device_id="phone")
        laptop = new_session(store, device_id="laptop")

        assert store.invalidate_device(1, "phone") == 1
        assert [s.id for s in store.get_user_sessions(1)] == [laptop.id]

    @pytest.mark.unit
    def test_update_role(self, store):
        first = new_session(store)
        second = new_session(store, device_id="laptop")

        store.update_role(1, "loan_officer", ["approve:loans"])

        assert first.role == second.role == "loan_officer"
        assert second.permissions == ["approve:loans"]


class TestSweep:

    @pytest.mark.unit
    def test_sweep_removes_expired_and_over_rotated(self, store, clock):
        stale = new_session(store, user_id=1)
        clock.advance(minutes=20)
        rotated = new_session(store, user_id=2)
        fresh = new_session(store, user_id=3)
        for _ in range(3):
            store.refresh(rotated.id, "r", "a")
        clock.advance(minutes=15)

        assert store.sweep() == 2
        assert store.get(stale.id) is None
        assert store.get(rotated.id) is None
        assert store.get(fresh.id) is fresh

    @pytest.mark.unit
    def test_stats(self, store, clock):
        new_session(store, user_id=1)
        new_session(store, user_id=1, device_id="laptop")
        new_session(store, user_id=2)

        stats = store.stats()

        assert stats.total == 3
        assert stats.active == 3
        assert stats.expired == 0
        assert stats.users == 2
        assert stats.average_sessions_per_user == 1.5

    async def test_start_and_stop(self):
        store = SessionStore(cleanup_interval=3600)

        store.start()
        assert store._sweep_task is not None

        await store.stop()
        assert store._sweep_task is None
