from __future__ import annotations

from sqlalchemy import types
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import Mapped
from sqlalchemy.schema import UniqueConstraint

from campusres.db.models.base import ORMBase
from campusres.db.models.timestamp import TimestampMixin
from campusres.db.models.types import JSON


from typing import Any
from typing import Literal


OwnerType = Literal['resource', 'reservation']


class Attribute(TimestampMixin, ORMBase):
    """ A free-form named value attached to a resource or a reservation,
    like the purpose of a reservation or the equipment of a station.

    The owner is referenced by its type and its id, there is no foreign key.

    """

    __tablename__ = 'attributes'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    owner_type: Mapped[OwnerType] = mapped_column(
        types.Enum('resource', 'reservation', name='attribute_owner_type')
    )

    owner_id: Mapped[int]

    name: Mapped[str] = mapped_column(types.String(64))

    value: Mapped[Any] = mapped_column(JSON(), nullable=True)

    __table_args__ = (
        UniqueConstraint('owner_type', 'owner_id', 'name'),
    )
