from __future__ import annotations

import pytest

from campusres import Actor
from campusres.modules import errors
from campusres.modules import events
from datetime import datetime


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from campusres.db.scheduler import Scheduler
    from tests.conftest import FrozenClock


alice = Actor(id=10)
bob = Actor(id=11)
staff = Actor(id=1, role='staff')


def test_reserve(stations: Scheduler) -> None:
    made = []
    events.on_reservation_made.append(
        lambda context, reservation: made.append(reservation)
    )

    station = stations.add_resource('1')
    reservation = stations.reserve(
        station.id, alice,
        datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 10),
        data={'purpose': 'Titration'}
    )
    stations.commit()

    assert made == [reservation]
    assert reservation.id is not None
    assert reservation.actor == alice.id
    assert reservation.kind == 'station'
    assert reservation.status == 'active'
    assert reservation.alert_sent is False
    assert reservation.is_claim
    assert reservation.created is not None
    assert stations.reservation_data(reservation.id) == {
        'purpose': 'Titration'
    }


def test_validation_order(stations: Scheduler, clock: FrozenClock) -> None:
    station = stations.add_resource('2')

    with pytest.raises(errors.ReservationParametersInvalid):
        stations.reserve(station.id, alice, None, datetime(2026, 3, 2, 9))  # type: ignore[arg-type]

    with pytest.raises(errors.ReservationParametersInvalid):
        stations.reserve(station.id, alice, '2026-03-02T09:00', '')

    with pytest.raises(errors.ReservationParametersInvalid):
        stations.reserve(None, alice, '2026-03-02T09:00', '2026-03-02T10:00')  # type: ignore[arg-type]

    with pytest.raises(errors.ReservationParametersInvalid):
        stations.reserve(station.id, None, '2026-03-02T09:00', '2026-03-02T10:00')  # type: ignore[arg-type]

    # the ordering is checked before the past
    with pytest.raises(errors.EndBeforeStart):
        stations.reserve(
            station.id, alice,
            datetime(2026, 3, 1, 10), datetime(2026, 3, 1, 9)
        )

    with pytest.raises(errors.EndBeforeStart):
        stations.reserve(
            station.id, alice,
            datetime(2026, 3, 2, 10), datetime(2026, 3, 2, 10)
        )

    # the past is checked before the duration
    with pytest.raises(errors.ReservationInPast):
        stations.reserve(
            station.id, alice,
            datetime(2026, 3, 1, 8), datetime(2026, 3, 2, 9)
        )

    with pytest.raises(errors.ReservationInPast):
        stations.reserve(
            station.id, alice,
            datetime(2026, 3, 2, 7, 59), datetime(2026, 3, 2, 9)
        )

    # the duration is checked before the resource
    with pytest.raises(errors.ReservationTooLong):
        stations.reserve(
            station.id + 1000, alice,
            datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 14)
        )

    with pytest.raises(errors.UnknownResource):
        stations.reserve(
            station.id + 1000, alice,
            datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 10)
        )

    # starting right now is fine
    stations.reserve(
        station.id, alice,
        datetime(2026, 3, 2, 8), datetime(2026, 3, 2, 9)
    )


def test_validation_errors_are_validation_errors() -> None:
    for error in (
        errors.ReservationParametersInvalid,
        errors.EndBeforeStart,
        errors.ReservationInPast,
        errors.ReservationTooLong,
        errors.ResourceUnavailable,
        errors.ReservationNotActive,
    ):
        assert issubclass(error, errors.ValidationError)
        assert str(error())

    assert issubclass(errors.StorageConflictError, errors.ConflictError)
    assert issubclass(errors.UnknownResource, errors.NotFoundError)
    assert issubclass(errors.UnknownReservation, errors.NotFoundError)


def test_cancel_own_reservation(stations: Scheduler) -> None:
    cancelled = []
    events.on_reservation_cancelled.append(
        lambda context, reservation: cancelled.append(reservation)
    )

    station = stations.add_resource('3')
    reservation = stations.reserve(
        station.id, alice,
        datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 10)
    )
    stations.commit()

    assert station.status == 'reserved'

    stations.cancel(reservation.id, alice)
    stations.commit()

    assert reservation.status == 'cancelled'
    assert not reservation.is_claim
    assert stations.resource_by_id(station.id).status == 'available'
    assert cancelled == [reservation]

    with pytest.raises(errors.ReservationNotActive):
        stations.cancel(reservation.id, alice)

    assert cancelled == [reservation]


def test_cancel_keeps_other_claims(rooms: Scheduler) -> None:
    room = rooms.add_resource('HG E 2')
    first = rooms.reserve(
        room.id, alice,
        datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 10)
    )
    rooms.reserve(
        room.id, bob,
        datetime(2026, 3, 2, 11), datetime(2026, 3, 2, 12)
    )

    rooms.cancel(first.id, alice)
    rooms.commit()

    assert rooms.resource_by_id(room.id).status == 'reserved'


def test_cancel_foreign_reservation(stations: Scheduler) -> None:
    station = stations.add_resource('4')
    reservation = stations.reserve(
        station.id, alice,
        datetime(2026, 3, 2, 8), datetime(2026, 3, 2, 10)
    )
    stations.commit()

    with pytest.raises(errors.AuthorizationError):
        stations.cancel(reservation.id, bob)

    stations.commit()

    assert stations.reservation_by_id(reservation.id).status == 'active'
    assert stations.resource_by_id(station.id).status == 'occupied'


def test_cancel_as_administrator(stations: Scheduler) -> None:
    station = stations.add_resource('5')
    reservation = stations.reserve(
        station.id, alice,
        datetime(2026, 3, 2, 8), datetime(2026, 3, 2, 10)
    )

    stations.cancel(reservation.id, staff)
    assert reservation.status == 'cancelled'


def test_cancel_with_custom_roles(stations: Scheduler) -> None:
    stations.context.set_setting('administrator_roles', {'tutor'})
    stations.clear_cache()

    station = stations.add_resource('6')
    reservation = stations.reserve(
        station.id, alice,
        datetime(2026, 3, 2, 8), datetime(2026, 3, 2, 10)
    )

    with pytest.raises(errors.AuthorizationError):
        stations.cancel(reservation.id, staff)

    stations.cancel(reservation.id, Actor(id=99, role='tutor'))
    assert reservation.status == 'cancelled'


def test_cancel_unknown_reservation(stations: Scheduler) -> None:
    with pytest.raises(errors.UnknownReservation):
        stations.cancel(1000000, alice)


def test_room_reservations_are_invisible_to_stations(
    rooms: Scheduler,
    stations: Scheduler
) -> None:
    room = rooms.add_resource('HG E 3')
    reservation = rooms.reserve(
        room.id, alice,
        datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 10)
    )

    with pytest.raises(errors.UnknownReservation):
        stations.reservation_by_id(reservation.id)

    assert stations.reservations(mine=alice) == []
