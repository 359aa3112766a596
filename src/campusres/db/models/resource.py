from __future__ import annotations

from sqlalchemy import types
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import relationship
from sqlalchemy.orm import Mapped
from sqlalchemy.schema import ForeignKey
from sqlalchemy.schema import Index

from campusres.db.models.base import ORMBase
from campusres.db.models.timestamp import TimestampMixin
from campusres.modules.policies import ResourceKind
from campusres.modules.policies import ResourceStatus


class Resource(TimestampMixin, ORMBase):
    """ A room or a lab station that may be reserved.

    The status is derived from the reservations and kept up to date by the
    scheduler, with the exception of 'out_of_service', which is only set
    and lifted by an administrator (see ``active``).

    """

    __tablename__ = 'resources'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    kind: Mapped[ResourceKind] = mapped_column(
        types.Enum('room', 'station', name='resource_kind')
    )

    #: the room name or the station number
    label: Mapped[str] = mapped_column(types.String(255))

    status: Mapped[ResourceStatus] = mapped_column(
        types.Enum(
            'available', 'reserved', 'occupied', 'out_of_service',
            name='resource_status'
        ),
        default='available'
    )

    #: inactive resources cannot be reserved, whatever their status
    active: Mapped[bool] = mapped_column(default=True)

    #: the room a lab station is located in
    lab_id: Mapped[int | None] = mapped_column(
        ForeignKey('resources.id'),
        nullable=True
    )

    lab: Mapped[Resource | None] = relationship(
        remote_side=[id],
        lazy='joined'
    )

    __table_args__ = (
        Index('resource_kind_ix', 'kind', 'id'),
    )

    def __repr__(self) -> str:
        return f'<Resource {self.kind} {self.label!r} ({self.status})>'

    @property
    def is_reservable(self) -> bool:
        return self.active and self.status != 'out_of_service'
