import asyncio
import time
from datetime import date, datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pld_scheduler.core.exceptions import BackingStoreUnavailableError
from pld_scheduler.schemas.calendar import Availability, DayAllotment
from pld_scheduler.services.allotment_store import AllotmentStore
from pld_scheduler.services.allotments import SqlAllotmentSource, set_max_allotment
from pld_scheduler.services.retry import RetryPolicy

JAN = date(2025, 1, 1)
FEB = date(2025, 2, 1)
MAR = date(2025, 3, 1)

NO_RETRY_DELAY = RetryPolicy(max_attempts=2, delay_seconds=0.0)


def _day(key, current=0):
    return DayAllotment(date=key, max_allotment=5, current_requests=current, availability=Availability.AVAILABLE)


class FakeSource:
    """In-memory allotment source that records every load."""

    def __init__(self, delays=None, failures=0, unconfigured=()):
        self.month_calls = []
        self.date_calls = []
        self.delays = delays or {}
        self.failures = failures
        self.current = 0
        self.unconfigured = set(unconfigured)

    def load_month(self, division, month):
        self.month_calls.append((division, month))
        if self.failures:
            self.failures -= 1
            raise BackingStoreUnavailableError()
        time.sleep(self.delays.get(month, 0))
        key = month.strftime("%Y-%m-10")
        return {key: _day(key, self.current)}

    def load_date(self, division, day):
        self.date_calls.append((division, day))
        if day in self.unconfigured:
            return None
        return _day(day.strftime("%Y-%m-%d"), self.current)


def _store(source, debounce=0.0):
    return AllotmentStore(source, debounce_seconds=debounce, retry_policy=NO_RETRY_DELAY)


def test_rapid_fetches_collapse_into_one_load():
    source = FakeSource()
    store = _store(source, debounce=0.05)

    async def scenario():
        await store.activate("D1")
        return await asyncio.gather(
            store.fetch_allotments("D1", JAN),
            store.fetch_allotments("D1", FEB),
            store.fetch_allotments("D1", MAR),
        )

    results = asyncio.run(scenario())

    assert results[0] is None
    assert results[1] is None
    assert list(results[2].keys()) == ["2025-03-10"]
    assert source.month_calls == [("D1", MAR)]
    assert store.month == MAR
    assert store.is_loading is False


def test_superseded_load_never_commits():
    source = FakeSource(delays={JAN: 0.2})
    store = _store(source)

    async def scenario():
        await store.activate("D1")
        slow = asyncio.ensure_future(store.fetch_allotments("D1", JAN))
        await asyncio.sleep(0.05)
        fast = await store.fetch_allotments("D1", FEB)
        stale = await slow
        # Let the abandoned worker thread finish; its result must still be ignored
        await asyncio.sleep(0.25)
        return stale, fast

    stale, fast = asyncio.run(scenario())

    assert stale is None
    assert list(fast.keys()) == ["2025-02-10"]
    assert list(store.allotments.keys()) == ["2025-02-10"]
    assert store.month == FEB


def test_fetches_before_activation_are_deferred():
    source = FakeSource()
    store = _store(source)

    async def scenario():
        parked = [
            await store.fetch_allotments("D1", JAN),
            await store.fetch_allotments("D1", FEB),
        ]
        assert source.month_calls == []
        replayed = await store.activate("D1")
        return parked, replayed

    parked, replayed = asyncio.run(scenario())

    assert parked == [None, None]
    assert list(replayed.keys()) == ["2025-02-10"]
    assert source.month_calls == [("D1", FEB)]


def test_deferred_fetch_without_division_uses_activated_division():
    source = FakeSource()
    store = _store(source)

    async def scenario():
        await store.fetch_allotments(None, date(2025, 3, 18))
        return await store.activate("D7")

    replayed = asyncio.run(scenario())

    assert replayed is not None
    assert source.month_calls == [("D7", MAR)]
    assert store.division == "D7"


def test_activation_without_deferred_fetch_loads_nothing():
    source = FakeSource()
    store = _store(source)
    assert asyncio.run(store.activate("D1")) is None
    assert store.is_ready is True
    assert source.month_calls == []


def test_read_is_retried_once():
    source = FakeSource(failures=1)
    store = _store(source)

    async def scenario():
        await store.activate("D1")
        return await store.fetch_allotments("D1", JAN)

    result = asyncio.run(scenario())

    assert list(result.keys()) == ["2025-01-10"]
    assert len(source.month_calls) == 2
    assert store.error is None


def test_exhausted_retries_surface_error_and_keep_previous_data():
    source = FakeSource()
    store = _store(source)

    async def scenario():
        await store.activate("D1")
        await store.fetch_allotments("D1", JAN)
        source.failures = 5
        return await store.fetch_allotments("D1", FEB)

    result = asyncio.run(scenario())

    assert result is None
    assert isinstance(store.error, BackingStoreUnavailableError)
    assert store.is_loading is False
    assert list(store.allotments.keys()) == ["2025-01-10"]
    assert len(source.month_calls) == 3


def test_refresh_replaces_single_entry_in_a_new_mapping():
    source = FakeSource()
    store = _store(source)

    async def scenario():
        await store.activate("D1")
        loaded = await store.fetch_allotments("D1", FEB)
        source.current = 4
        refreshed = await store.refresh_allotment_for_date("D1", date(2025, 2, 10))
        outside = await store.refresh_allotment_for_date("D1", date(2025, 3, 10))
        other_division = await store.refresh_allotment_for_date("D2", date(2025, 2, 10))
        return loaded, refreshed, outside, other_division

    loaded, refreshed, outside, other_division = asyncio.run(scenario())

    assert refreshed.current_requests == 4
    assert store.allotments["2025-02-10"].current_requests == 4
    assert loaded["2025-02-10"].current_requests == 0
    assert store.allotments is not loaded
    assert outside is None
    assert other_division is None
    assert source.date_calls == [("D1", date(2025, 2, 10))]


def test_close_cancels_pending_fetch_and_clears_state():
    source = FakeSource()
    store = _store(source, debounce=0.2)

    async def scenario():
        await store.activate("D1")
        pending = asyncio.ensure_future(store.fetch_allotments("D1", JAN))
        await asyncio.sleep(0.05)
        store.close()
        result = await pending
        after_close = await store.fetch_allotments("D1", FEB)
        return result, after_close

    result, after_close = asyncio.run(scenario())

    assert result is None
    assert after_close is None
    assert source.month_calls == []
    assert store.allotments == {}
    assert store.division is None
    assert store.is_ready is False


def test_refresh_drops_date_that_is_no_longer_configured():
    source = FakeSource(unconfigured={date(2025, 2, 10)})
    store = _store(source)

    async def scenario():
        await store.activate("D1")
        loaded = await store.fetch_allotments("D1", FEB)
        refreshed = await store.refresh_allotment_for_date("D1", date(2025, 2, 10))
        return loaded, refreshed

    loaded, refreshed = asyncio.run(scenario())

    assert refreshed is None
    assert "2025-02-10" in loaded
    assert store.allotments == {}


# --- Against the database-backed source ---

NOW = datetime(2025, 1, 15, 9, 0)


class FlakySessions:
    """Session factory whose first `failures` sessions point at an unreachable database."""

    def __init__(self, factory, failures=0):
        self._factory = factory
        self._broken = sessionmaker(bind=create_engine("sqlite:////nonexistent-dir/allotments.db"))
        self.failures = failures
        self.opened = []

    def __call__(self):
        if self.failures:
            self.failures -= 1
            session = self._broken()
        else:
            session = self._factory()
        self.opened.append(session)
        return session


def test_sql_source_month_fetch_and_refresh(db_session, session_factory):
    set_max_allotment(db_session, "D1", date(2025, 2, 10), 3, now=NOW)
    sessions = FlakySessions(session_factory)
    store = _store(SqlAllotmentSource(sessions, now=lambda: NOW))

    async def scenario():
        await store.activate("D1")
        loaded = await store.fetch_allotments("D1", FEB)
        set_max_allotment(db_session, "D1", date(2025, 2, 10), 5, now=NOW)
        refreshed = await store.refresh_allotment_for_date("D1", date(2025, 2, 10))
        unconfigured = await store.refresh_allotment_for_date("D1", date(2025, 2, 11))
        return loaded, refreshed, unconfigured

    loaded, refreshed, unconfigured = asyncio.run(scenario())

    assert list(loaded.keys()) == ["2025-02-10"]
    assert loaded["2025-02-10"].max_allotment == 3
    assert loaded["2025-02-10"].availability == Availability.AVAILABLE
    assert refreshed.max_allotment == 5
    assert unconfigured is None
    assert list(store.allotments.keys()) == ["2025-02-10"]
    assert store.allotments["2025-02-10"].max_allotment == 5
    # One session per load, each closed afterwards
    assert len(sessions.opened) == 3
    assert not any(session.in_transaction() for session in sessions.opened)


def test_sql_source_retries_when_database_is_unreachable(db_session, session_factory):
    set_max_allotment(db_session, "D1", date(2025, 2, 10), 3, now=NOW)
    sessions = FlakySessions(session_factory, failures=1)
    store = _store(SqlAllotmentSource(sessions, now=lambda: NOW))

    async def scenario():
        await store.activate("D1")
        return await store.fetch_allotments("D1", FEB)

    result = asyncio.run(scenario())

    assert list(result.keys()) == ["2025-02-10"]
    assert store.error is None
    assert len(sessions.opened) == 2


def test_sql_source_exhausted_retries_surface_error(session_factory):
    sessions = FlakySessions(session_factory, failures=5)
    store = _store(SqlAllotmentSource(sessions, now=lambda: NOW))

    async def scenario():
        await store.activate("D1")
        return await store.fetch_allotments("D1", FEB)

    assert asyncio.run(scenario()) is None
    assert isinstance(store.error, BackingStoreUnavailableError)
    assert store.allotments == {}
    assert len(sessions.opened) == 2
