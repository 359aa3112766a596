""" The rules which differ between the kinds of resources.

Rooms are booked by staff and professors: bookings are confirmed straight
away, may be changed later and simply elapse once they are over.

Lab stations are reserved by students: a student may only hold one active
reservation at a time, reservations are limited in length and they expire
once their end has passed.

"""
from __future__ import annotations

from datetime import timedelta


from typing import Literal
from typing import NamedTuple
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from typing_extensions import TypeAlias

    from campusres.context.core import Context

ResourceKind: TypeAlias = Literal['room', 'station']
ReservationStatus: TypeAlias = Literal[
    'active', 'confirmed', 'cancelled', 'expired', 'completed'
]
ResourceStatus: TypeAlias = Literal[
    'available', 'reserved', 'occupied', 'out_of_service'
]

#: the kinds of resources, each with its own scheduler
KINDS: tuple[ResourceKind, ...] = ('room', 'station')


class Policy(NamedTuple):

    #: the kind of resource this policy applies to
    kind: ResourceKind

    #: the status of a reservation currently holding its resource
    claim_status: ReservationStatus

    #: True if the sweep moves elapsed claims to 'expired'
    expires: bool

    #: the longest reservation possible, None if unlimited
    max_duration: timedelta | None

    #: True if an actor may only hold one claim at a time
    single_claim: bool

    #: True if reservations may be moved or changed after creation
    changeable: bool

    #: True if claims may be released before their end
    completable: bool

    #: True if listings show the latest reservations first
    newest_first: bool


def policy_for(kind: ResourceKind, context: Context) -> Policy:
    if kind == 'room':
        return Policy(
            kind='room',
            claim_status='confirmed',
            expires=False,
            max_duration=None,
            single_claim=False,
            changeable=True,
            completable=False,
            newest_first=False
        )

    if kind == 'station':
        return Policy(
            kind='station',
            claim_status='active',
            expires=True,
            max_duration=context.get_setting('max_station_duration'),
            single_claim=True,
            changeable=False,
            completable=True,
            newest_first=True
        )

    raise NotImplementedError(kind)


#: all statuses holding a claim, regardless of the kind
CLAIM_STATUSES: tuple[ReservationStatus, ...] = ('active', 'confirmed')
