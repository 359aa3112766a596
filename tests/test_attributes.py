from __future__ import annotations

from campusres import Actor
from campusres.db.attributes import AttributeStore
from datetime import datetime


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from campusres.db.scheduler import Scheduler


def test_attributes(rooms: Scheduler) -> None:
    store = AttributeStore(rooms.context)
    room = rooms.add_resource('HG D 1')

    store.set('resource', room.id, {
        'capacity': 120,
        'equipment': ['projector', 'microphone'],
        'accessible': True
    })
    rooms.commit()

    assert store.get('resource', room.id) == {
        'capacity': 120,
        'equipment': ['projector', 'microphone'],
        'accessible': True
    }

    store.set('resource', room.id, {'capacity': 100, 'accessible': None})
    rooms.commit()

    assert store.get('resource', room.id) == {
        'capacity': 100,
        'equipment': ['projector', 'microphone']
    }

    # owners of different types do not share their attributes
    assert store.get('reservation', room.id) == {}


def test_reservation_attributes_are_removed(rooms: Scheduler) -> None:
    store = AttributeStore(rooms.context)
    room = rooms.add_resource('HG D 2', data={'capacity': 12})
    reservation = rooms.reserve(
        room.id, Actor(id=1, role='professor'),
        datetime(2026, 3, 2, 9), datetime(2026, 3, 2, 10),
        data={'title': 'Seminar', 'notes': None}
    )
    rooms.commit()

    room_id, reservation_id = room.id, reservation.id
    assert rooms.reservation_data(reservation_id) == {'title': 'Seminar'}

    rooms.extinguish_managed_records()
    rooms.commit()

    assert store.get('reservation', reservation_id) == {}
    assert store.get('resource', room_id) == {}
