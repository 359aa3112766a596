""" Events are called by the :class:`campusres.db.scheduler.Scheduler`
whenever a reservation changes its state.

To subscribe to an event::

    from campusres.modules import events

    def on_reservation_made(context, reservation):
        pass

    events.on_reservation_made.append(on_reservation_made)

To unsubscribe::

    events.on_reservation_made.remove(on_reservation_made)

Subscribers are called in the order they were added, before the session
is committed.
"""
from __future__ import annotations


from typing import overload
from typing import Protocol
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Callable
    from collections.abc import Sequence
    from datetime import datetime
    from typing_extensions import ParamSpec

    from campusres.context.core import Context
    from campusres.db.models import Reservation

    _P = ParamSpec('_P')


class Event(list['Callable[_P, object]']):
    """ A list of callables. Calling the event calls each of them with the
    same arguments, in ascending order by index.

    """

    @overload
    def __init__(self, f: type[Callable[_P, object]]) -> None: ...
    @overload
    def __init__(self) -> None: ...

    def __init__(self, f: object = None) -> None:
        return

    def __call__(self, *args: _P.args, **kwargs: _P.kwargs) -> None:
        for f in self:
            f(*args, **kwargs)


on_reservation_made: Event[Context, Reservation] = Event()
""" Called when a reservation was created, with the following arguments:

    :context:
        The :class:`campusres.context.core.Context` of the scheduler.

    :reservation:
        The new :class:`campusres.db.models.Reservation` (flushed, not yet
        commited).

"""

on_reservation_cancelled: Event[Context, Reservation] = Event()
""" Called when a reservation was cancelled by its owner or by an
administrator, with the context and the cancelled reservation.

"""

on_reservation_completed: Event[Context, Reservation] = Event()
""" Called when a station reservation was released early, with the context
and the completed reservation.

"""

on_reservations_expired: Event[Context, Sequence[Reservation]] = Event()
""" Called by the sweep when reservations ran past their end, with the
context and the list of expired reservations. Not called if nothing
expired.

"""

on_reservation_expiring: Event[Context, Reservation] = Event()
""" Called once per reservation when its owner asks for claims ending
soon, with the context and the reservation about to expire.

"""


class _OnReservationChangedCallback(Protocol):
    def __call__(
        self,
        context: Context,
        reservation: Reservation,
        /,
        old_time: tuple[datetime, datetime],
        new_time: tuple[datetime, datetime]
    ) -> None: ...


on_reservation_changed = Event(_OnReservationChangedCallback)
""" Called when a room booking was changed, with the following arguments:

    :context:
        The :class:`campusres.context.core.Context` of the scheduler.

    :reservation:
        The changed :class:`campusres.db.models.Reservation`.

    :old_time:
        A tuple with the previous start and end.

    :new_time:
        A tuple with the new start and end.

"""
