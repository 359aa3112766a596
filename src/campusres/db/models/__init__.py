from campusres.db.models.base import ORMBase
from campusres.db.models.resource import Resource
from campusres.db.models.reservation import Reservation
from campusres.db.models.attribute import Attribute


__all__ = ('ORMBase', 'Attribute', 'Resource', 'Reservation')
