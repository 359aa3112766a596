from __future__ import annotations

import os
import pytest
import sedate

from campusres import new_scheduler, registry
from datetime import datetime, timedelta
from testing.postgresql import Postgresql  # type: ignore[import-untyped]
from uuid import uuid4 as new_uuid


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path
    from campusres.context.core import Context
    from campusres.db.scheduler import Scheduler


TIMEZONE = 'Europe/Zurich'


class FrozenClock:
    """ A clock which only moves when told to. """

    def __init__(self, now: datetime) -> None:
        self.set(now)

    def __call__(self) -> datetime:
        return self.value

    def set(self, now: datetime) -> None:
        self.value = sedate.standardize_date(now, TIMEZONE)

    def advance(self, **kwargs: float) -> None:
        self.value += timedelta(**kwargs)


def new_test_context(dsn: str, clock: FrozenClock | None = None) -> Context:
    context = registry.register_context(new_uuid().hex, replace=True)
    context.set_setting('dsn', dsn)

    if clock is not None:
        context.set_service('clock', lambda context: clock)

    return context


def setup_test_database(dsn: str) -> None:
    scheduler = new_scheduler(new_test_context(dsn), 'room', TIMEZONE)
    scheduler.setup_database()
    scheduler.commit()
    scheduler.close()
    scheduler.session_provider.stop_service()


@pytest.fixture(scope='session')
def dsn() -> Generator[str, None, None]:

    # an existing database may be used instead of a temporary one
    dsn = os.environ.get('CAMPUSRES_TEST_DSN')
    postgres = None

    if not dsn:
        postgres = Postgresql()
        dsn = postgres.url()

    setup_test_database(dsn)

    yield dsn

    if postgres is not None:
        postgres.stop()


@pytest.fixture
def sqlite_dsn(tmp_path: Path) -> str:
    dsn = f"sqlite:///{tmp_path / 'campusres.db'}"
    setup_test_database(dsn)

    return dsn


@pytest.fixture
def clock() -> FrozenClock:
    # a monday morning
    return FrozenClock(datetime(2026, 3, 2, 8, 0))


@pytest.fixture
def context(dsn: str, clock: FrozenClock) -> Generator[Context, None, None]:

    # clear the events before each test
    from campusres.modules import events
    for event in (e for e in dir(events) if e.startswith('on_')):
        del getattr(events, event)[:]

    context = new_test_context(dsn, clock)

    yield context

    stations = new_scheduler(context, 'station', TIMEZONE)
    rooms = new_scheduler(context, 'room', TIMEZONE)

    # stations reference the rooms they are in
    stations.rollback()
    stations.extinguish_managed_records()
    rooms.extinguish_managed_records()
    stations.commit()
    stations.close()
    stations.session_provider.stop_service()


@pytest.fixture
def rooms(context: Context) -> Scheduler:
    return new_scheduler(context, 'room', TIMEZONE)


@pytest.fixture
def stations(context: Context) -> Scheduler:
    return new_scheduler(context, 'station', TIMEZONE)


@pytest.fixture
def postgres_only(dsn: str) -> None:
    if not dsn.startswith('postgresql'):
        pytest.skip('CAMPUSRES_TEST_DSN does not point to PostgreSQL')


@pytest.fixture
def sqlite_rooms(
    sqlite_dsn: str,
    clock: FrozenClock
) -> Generator[Scheduler, None, None]:

    context = new_test_context(sqlite_dsn, clock)
    scheduler = new_scheduler(context, 'room', TIMEZONE)

    yield scheduler

    scheduler.rollback()
    scheduler.close()
    scheduler.session_provider.stop_service()
