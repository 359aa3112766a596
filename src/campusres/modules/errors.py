from __future__ import annotations

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from datetime import datetime
    from campusres.db.models import Reservation


class CampusresError(Exception):
    """ Base class of all errors raised by campusres. The message is meant
    to be shown to the user as is.

    """

    message = 'The request could not be completed'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class ContextAlreadyExists(CampusresError):
    pass


class UnknownContext(CampusresError):
    pass


class ContextIsLocked(CampusresError):
    pass


class UnknownService(CampusresError):
    pass


class ValidationError(CampusresError):
    message = 'Invalid reservation request'


class ReservationParametersInvalid(ValidationError):
    message = 'Resource, actor, start and end are required'


class EndBeforeStart(ValidationError):
    message = 'End time must be after start time'


class ReservationInPast(ValidationError):
    message = 'Cannot make a reservation in the past'


class ReservationTooLong(ValidationError):
    message = 'Reservation duration exceeds the allowed maximum'


class ResourceUnavailable(ValidationError):
    message = 'This resource is not available for reservations'


class ReservationNotActive(ValidationError):
    message = 'Only active reservations can be changed'


class OperationNotSupported(ValidationError):
    message = 'This operation is not supported for this kind of resource'


class ConflictError(CampusresError):

    __slots__ = ('start', 'end', 'existing')

    message = 'This resource is already reserved for the selected time slot'

    def __init__(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        existing: Reservation | None = None,
        message: str | None = None
    ):
        super().__init__(message)
        self.start = start
        self.end = end
        self.existing = existing


class StorageConflictError(ConflictError):
    """ Raised when the database rejected a write that passed the checks
    in Python, i.e. a concurrent request claimed the resource first.

    """


class DuplicateActiveReservationError(CampusresError):

    __slots__ = ('existing', 'resource_label', 'lab_label', 'end')

    def __init__(
        self,
        existing: Reservation,
        resource_label: str,
        lab_label: str | None = None
    ):
        self.existing = existing
        self.resource_label = resource_label
        self.lab_label = lab_label
        self.end = existing.end

        where = f'Station {resource_label}'
        if lab_label:
            where = f'{lab_label}, {where}'

        super().__init__(
            f'You already have an active reservation at {where}. Please '
            'complete or cancel your current reservation before making a '
            'new one.'
        )


class NotFoundError(CampusresError):
    message = 'Not found'


class UnknownResource(NotFoundError):
    message = 'Resource not found'


class UnknownReservation(NotFoundError):
    message = 'Reservation not found'


class AuthorizationError(CampusresError):
    message = 'You can only change your own reservations'
