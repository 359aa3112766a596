from __future__ import annotations

from typing import NamedTuple


class Actor(NamedTuple):
    """ The authenticated user making a request. Campusres does not know
    about users, it only needs to know who is calling and which role the
    caller holds.

    """

    id: int
    role: str = 'student'
