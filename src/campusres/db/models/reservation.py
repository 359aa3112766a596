from __future__ import annotations

import sedate

from datetime import datetime
from sqlalchemy import event
from sqlalchemy import text
from sqlalchemy import types
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import relationship
from sqlalchemy.orm import Mapped
from sqlalchemy.schema import DDL
from sqlalchemy.schema import ForeignKey
from sqlalchemy.schema import Index

from campusres.db.models.base import ORMBase
from campusres.db.models.resource import Resource
from campusres.db.models.timestamp import TimestampMixin
from campusres.modules.policies import CLAIM_STATUSES
from campusres.modules.policies import ReservationStatus
from campusres.modules.policies import ResourceKind


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from sedate.types import TzInfoOrName


class Reservation(TimestampMixin, ORMBase):
    """ A time-bounded exclusive claim of an actor on a resource.

    Reservations are never deleted, they change their status instead. Rooms
    are booked as 'confirmed', stations are reserved as 'active'. Both are
    claims on their resource until they are cancelled, completed or (for
    stations only) expired.

    Start and end form a half-open range, a reservation ending at 10:00
    does not overlap one starting at 10:00.

    """

    __tablename__ = 'reservations'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    resource_id: Mapped[int] = mapped_column(ForeignKey(Resource.id))

    resource: Mapped[Resource] = relationship(lazy='joined')

    #: copied from the resource, the storage constraints depend on it
    kind: Mapped[ResourceKind] = mapped_column(
        types.Enum('room', 'station', name='reservation_kind')
    )

    #: the id of the user holding the reservation
    actor: Mapped[int]

    start: Mapped[datetime]

    end: Mapped[datetime]

    #: the timezone the reservation was made in, used for display
    timezone: Mapped[str] = mapped_column(types.String(64))

    status: Mapped[ReservationStatus] = mapped_column(
        types.Enum(
            'active', 'confirmed', 'cancelled', 'expired', 'completed',
            name='reservation_status'
        )
    )

    #: set once the owner was told that the reservation ends soon
    alert_sent: Mapped[bool] = mapped_column(default=False)

    __table_args__ = (
        Index('reservation_resource_ix', 'resource_id', 'status', 'start'),
        Index('reservation_actor_ix', 'actor', 'status'),

        # a student may only hold a single active station reservation, this
        # guards against concurrent requests passing the check in Python
        Index(
            'reservation_single_claim_ix', 'actor',
            unique=True,
            postgresql_where=text("kind = 'station' AND status = 'active'"),
            sqlite_where=text("kind = 'station' AND status = 'active'")
        ),
    )

    def __repr__(self) -> str:
        return (
            f'<Reservation {self.id} on {self.resource_id} '
            f'{self.start:%Y-%m-%d %H:%M} - {self.end:%H:%M} '
            f'({self.status})>'
        )

    @property
    def is_claim(self) -> bool:
        """ True if the reservation currently holds its resource. """
        return self.status in CLAIM_STATUSES

    def display_start(
        self,
        timezone: TzInfoOrName | None = None
    ) -> datetime:
        return sedate.to_timezone(self.start, timezone or self.timezone)

    def display_end(
        self,
        timezone: TzInfoOrName | None = None
    ) -> datetime:
        return sedate.to_timezone(self.end, timezone or self.timezone)


# PostgreSQL can reject overlapping claims on the same resource by itself,
# which closes the gap between the overlap check and the commit
event.listen(
    ORMBase.metadata,
    'before_create',
    DDL('CREATE EXTENSION IF NOT EXISTS btree_gist').execute_if(
        dialect='postgresql'
    )
)

event.listen(
    Reservation.__table__,
    'after_create',
    DDL(
        'ALTER TABLE reservations '
        'ADD CONSTRAINT reservation_no_overlap_ex '
        'EXCLUDE USING gist ('
        'resource_id WITH =, '
        "tsrange(\"start\", \"end\", '[)') WITH &&"
        ') WHERE (status IN ({}))'.format(
            ', '.join(f"'{status}'" for status in CLAIM_STATUSES)
        )
    ).execute_if(dialect='postgresql')
)
