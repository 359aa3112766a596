from __future__ import annotations

from sqlalchemy.types import JSON as GenericJSON
from sqlalchemy.types import TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.types import TypeEngine

    _Base = TypeDecorator[Any]
else:
    _Base = TypeDecorator


class JSON(_Base):
    """ Any json serializable value. Stored as JSONB on PostgreSQL and as
    JSON text on other databases.

    Note that changes inside a stored dictionary or list are not detected,
    assign a new value instead.

    """

    impl = GenericJSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(GenericJSON())
