from __future__ import annotations

import sedate

from datetime import datetime
from dateutil import parser as dateparser

from campusres.modules import errors


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from sedate.types import TzInfoOrName
    from typing_extensions import TypeAlias

    DateInput: TypeAlias = 'datetime | str'


def parse_datetime(
    value: DateInput | None,
    timezone: TzInfoOrName
) -> datetime:
    """ Turns a datetime or an ISO-8601 string into a timezone aware UTC
    datetime. Naive values are assumed to be of the given timezone.

    """
    if value is None or value == '':
        raise errors.ReservationParametersInvalid()

    if isinstance(value, str):
        try:
            value = dateparser.isoparse(value)
        except ValueError:
            raise errors.ReservationParametersInvalid(
                f'Invalid date: {value}'
            ) from None

    if not isinstance(value, datetime):
        raise errors.ReservationParametersInvalid(
            f'Invalid date: {value!r}'
        )

    return sedate.standardize_date(value, timezone)

