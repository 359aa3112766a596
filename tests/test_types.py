from __future__ import annotations

import pytest
import sedate

from campusres.db.models.types import UTCDateTime
from datetime import datetime
from sqlalchemy.dialects import sqlite


def test_utcdatetime_stores_naive_utc() -> None:
    column = UTCDateTime()
    dialect = sqlite.dialect()

    value = sedate.replace_timezone(datetime(2026, 7, 1, 12), 'Europe/Zurich')
    stored = column.process_bind_param(value, dialect)

    assert stored == datetime(2026, 7, 1, 10)
    assert stored.tzinfo is None

    loaded = column.process_result_value(stored, dialect)
    assert loaded == value
    assert loaded.tzinfo is not None
    assert loaded.utcoffset().total_seconds() == 0


def test_utcdatetime_none() -> None:
    column = UTCDateTime()
    dialect = sqlite.dialect()

    assert column.process_bind_param(None, dialect) is None
    assert column.process_result_value(None, dialect) is None


def test_utcdatetime_rejects_naive_dates() -> None:
    with pytest.raises(AssertionError):
        UTCDateTime().process_bind_param(
            datetime(2026, 7, 1, 12), sqlite.dialect()
        )
