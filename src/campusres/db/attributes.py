from __future__ import annotations

from campusres.context.core import ContextServicesMixin
from campusres.db.models import Attribute


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Collection
    from collections.abc import Mapping
    from sqlalchemy.orm import Query

    from campusres.context.core import Context
    from campusres.db.models.attribute import OwnerType


class AttributeStore(ContextServicesMixin):
    """ Reads and writes the free-form attributes of resources and
    reservations. Values must be json serializable.

    """

    def __init__(self, context: Context):
        self.context = context

    def by_owner(
        self,
        owner_type: OwnerType,
        owner_id: int
    ) -> Query[Attribute]:

        query = self.session.query(Attribute)
        query = query.filter(Attribute.owner_type == owner_type)
        query = query.filter(Attribute.owner_id == owner_id)

        return query

    def get(self, owner_type: OwnerType, owner_id: int) -> dict[str, Any]:
        return {
            attribute.name: attribute.value
            for attribute in self.by_owner(owner_type, owner_id)
        }

    def set(
        self,
        owner_type: OwnerType,
        owner_id: int,
        values: Mapping[str, Any]
    ) -> None:
        """ Updates the given attributes, leaving the others untouched.
        Attributes set to None are removed.

        """
        existing = {a.name: a for a in self.by_owner(owner_type, owner_id)}

        for name, value in values.items():
            attribute = existing.get(name)

            if value is None:
                if attribute is not None:
                    self.session.delete(attribute)
                continue

            if attribute is None:
                attribute = Attribute(
                    owner_type=owner_type,
                    owner_id=owner_id,
                    name=name
                )
                self.session.add(attribute)

            attribute.value = value

    def remove(
        self,
        owner_type: OwnerType,
        owner_ids: Collection[int] | Query[Any]
    ) -> None:
        query = self.session.query(Attribute)
        query = query.filter(Attribute.owner_type == owner_type)
        query = query.filter(Attribute.owner_id.in_(owner_ids))
        query.delete('fetch')
