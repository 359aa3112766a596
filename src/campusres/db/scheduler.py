from __future__ import annotations

import logging

from contextlib import contextmanager
from datetime import timedelta
from psycopg2.extensions import TransactionRollbackError
from sqlalchemy.exc import IntegrityError, OperationalError

from campusres.context.core import ContextServicesMixin
from campusres.db.attributes import AttributeStore
from campusres.db.models import ORMBase, Resource, Reservation
from campusres.db.queries import Queries
from campusres.modules import errors
from campusres.modules import events
from campusres.modules import utils
from campusres.modules.policies import policy_for


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Collection
    from collections.abc import Iterator
    from collections.abc import Mapping
    from datetime import datetime
    from sqlalchemy.orm import Query
    from typing_extensions import Self

    from campusres.context.core import Context
    from campusres.modules.actors import Actor
    from campusres.modules.policies import ReservationStatus
    from campusres.modules.policies import ResourceKind
    from campusres.modules.policies import ResourceStatus
    from campusres.modules.utils import DateInput


log = logging.getLogger('campusres')


class Scheduler(ContextServicesMixin):
    """ The Scheduler creates, changes and ends the reservations of one
    kind of resource. It is the main part of the API.

    Rooms and lab stations share the same scheduler, the differences between
    them are described by the :class:`campusres.modules.policies.Policy` of
    the kind.

    The scheduler never commits, that is up to the caller. Use
    :meth:`commit` to have storage conflicts reported as
    :class:`campusres.modules.errors.StorageConflictError`.

    """

    def __init__(
        self,
        context: Context,
        kind: ResourceKind,
        timezone: str
    ):
        """ Initializes a new Scheduler instance.

        :context:
            The :class:`campusres.context.core.Context` this scheduler should
            operate on. Acquire a context by using
            :func:`campusres.context.registry.Registry.register_context`.

        :kind:
            Either 'room' or 'station'. A scheduler only ever sees the
            resources and reservations of its own kind.

        :timezone:
            Dates passed to the scheduler that are not timezone-aware are
            assumed to be of this timezone. It is also stored on each
            reservation to display its start and end.

        """

        assert isinstance(timezone, str)

        self.context = context
        self.queries = Queries(context)
        self.attributes = AttributeStore(context)

        self.kind = kind
        self.policy = policy_for(kind, context)
        self.timezone = timezone

    def clone(self) -> Self:
        """ Clones the scheduler. The result will be a new scheduler using the
        same context, kind and timezone.

        """

        return self.__class__(self.context, self.kind, self.timezone)

    def setup_database(self) -> None:
        """ Creates the tables, indices and constraints required for
        campusres. This needs to be called once per database. Multiple
        invocations won't hurt but they are unnecessary.

        """
        ORMBase.metadata.create_all(self.session.bind)

    @contextmanager
    def storage_conflicts(
        self,
        start: datetime | None = None,
        end: datetime | None = None
    ) -> Iterator[None]:
        """ Turns the database refusing a write, because a concurrent
        transaction claimed the same resource first, into a
        :class:`StorageConflictError`. The session is rolled back.

        """
        try:
            yield
        except IntegrityError as e:
            self.session.rollback()
            log.warning(f'Storage conflict in {self.kind} scheduler: {e.orig}')
            raise errors.StorageConflictError(start, end) from e
        except OperationalError as e:
            if not isinstance(e.orig, TransactionRollbackError):
                raise

            self.session.rollback()
            log.warning(f'Serialization failure in {self.kind} scheduler')
            raise errors.StorageConflictError(start, end) from e

    def commit(self) -> None:
        with self.storage_conflicts():
            self.session.commit()

    def _flush(self, start: datetime, end: datetime) -> None:
        with self.storage_conflicts(start, end):
            self.session.flush()

    def _prepare_range(
        self,
        start: DateInput | None,
        end: DateInput | None
    ) -> tuple[datetime, datetime]:
        return (
            utils.parse_datetime(start, self.timezone),
            utils.parse_datetime(end, self.timezone)
        )

    def managed_resources(self) -> Query[Resource]:
        """ The resources managed by this scheduler (of its kind). """
        query = self.session.query(Resource)
        query = query.filter(Resource.kind == self.kind)

        return query

    def managed_reservations(self) -> Query[Reservation]:
        """ The reservations managed by this scheduler (of its kind). """
        query = self.session.query(Reservation)
        query = query.filter(Reservation.kind == self.kind)

        return query

    def extinguish_managed_records(self) -> None:
        """ WARNING:
        Completely removes any trace of the records managed by this scheduler.
        That means all reservations, resources and their attributes!

        Stations reference the rooms they are located in, so extinguish the
        stations before the rooms.

        """
        reservations = self.managed_reservations()
        resources = self.managed_resources()

        self.attributes.remove(
            'reservation',
            reservations.with_entities(Reservation.id)
        )
        self.attributes.remove(
            'resource',
            resources.with_entities(Resource.id)
        )

        reservations.delete('fetch')
        resources.delete('fetch')

    # catalog

    def add_resource(
        self,
        label: str,
        lab_id: int | None = None,
        data: Mapping[str, Any] | None = None
    ) -> Resource:
        """ Adds a new resource of the scheduler's kind.

        :label:
            The name of the room or the number of the station.

        :lab_id:
            The id of the room a station is located in.

        :data:
            Free-form attributes of the resource, like the capacity of a
            room or the equipment of a station. Values need to be json
            serializable.

        """

        label = label.strip()

        if not label:
            raise errors.ValidationError('A label is required')

        if lab_id is not None:
            self._lab(lab_id)

        resource = Resource(
            kind=self.kind,
            label=label,
            status='available',
            active=True,
            lab_id=lab_id
        )

        self.session.add(resource)
        self.session.flush()

        if data:
            self.attributes.set('resource', resource.id, data)

        return resource

    def _resource(self, id: int) -> Resource:
        resource = self.managed_resources().filter(Resource.id == id).first()

        if resource is None:
            raise errors.UnknownResource()

        return resource

    def _lab(self, id: int) -> Resource:
        lab = self.session.get(Resource, id)

        if lab is None or lab.kind != 'room':
            raise errors.UnknownResource(f'Unknown lab: {id}')

        return lab

    def resource_by_id(self, id: int) -> Resource:
        self.expire_reservations()
        return self._resource(id)

    def resources(
        self,
        lab_id: int | None = None,
        active: bool | None = None
    ) -> list[Resource]:
        """ The resources of this kind with an up to date status, ordered
        by id.

        :lab_id:
            Only the stations located in this room.

        :active:
            Only the resources in service (True) or out of service (False).

        """
        self.expire_reservations()

        query = self.managed_resources()

        if lab_id is not None:
            query = query.filter(Resource.lab_id == lab_id)

        if active is not None:
            query = query.filter(Resource.active == active)

        return query.order_by(Resource.id).all()

    def current_reservation(self, resource_id: int) -> Reservation | None:
        """ The reservation holding the resource right now, if any. """
        self.expire_reservations()

        resource = self._resource(resource_id)
        query = self.queries.running_claims(
            self.policy, self.now(), (resource.id, )
        )

        return query.first()

    def stations_in_lab(
        self,
        lab_id: int
    ) -> list[tuple[Resource, Reservation | None]]:
        """ The stations of the given lab which are in service, each with
        the reservation holding it right now (or None).

        """

        if self.kind != 'station':
            raise errors.OperationNotSupported()

        self.expire_reservations()

        lab = self._lab(lab_id)

        query = self.managed_resources()
        query = query.filter(Resource.lab_id == lab.id)
        query = query.filter(Resource.active.is_(True))
        stations = query.order_by(Resource.id).all()

        running = self.queries.running_claims(
            self.policy, self.now(), [station.id for station in stations]
        )
        current = {r.resource_id: r for r in running}

        return [(station, current.get(station.id)) for station in stations]

    def resource_data(self, id: int) -> dict[str, Any]:
        return self.attributes.get('resource', self._resource(id).id)

    def deactivate_resource(self, id: int) -> Resource:
        """ Takes the resource out of service. Existing reservations are
        kept, but no new ones may be made until the resource is activated
        again.

        """
        resource = self._resource(id)
        resource.active = False
        resource.status = 'out_of_service'

        return resource

    def activate_resource(self, id: int) -> Resource:
        resource = self._resource(id)
        resource.active = True
        resource.status = 'available'

        self.project_status(resource)

        return resource

    # status projection

    def derived_status(self, running: int, upcoming: int) -> ResourceStatus:
        if running:
            return 'occupied'
        if upcoming:
            return 'reserved'
        return 'available'

    def project_statuses(
        self,
        resource_ids: Collection[int] | None = None,
        now: datetime | None = None
    ) -> None:
        """ Updates the status of the given resources (all resources of
        this kind by default) from their claims. Resources out of service
        are left alone.

        """

        now = now or self.now()
        counts = self.queries.claim_counts(self.policy, now, resource_ids)

        query = self.managed_resources()
        query = query.filter(Resource.status != 'out_of_service')

        if resource_ids is not None:
            query = query.filter(Resource.id.in_(resource_ids))

        for resource in query:
            status = self.derived_status(*counts.get(resource.id, (0, 0)))

            if resource.status != status:
                resource.status = status

    def project_status(self, resource: Resource) -> None:
        if resource.status == 'out_of_service':
            return

        self.session.flush()
        self.project_statuses((resource.id, ))

    # expiration

    def expire_reservations(self) -> list[Reservation]:
        """ Ends the claims which ran past their end and brings the status
        of the resources up to date. Returns the expired reservations.

        Every other operation of the scheduler calls this first, so there is
        no need for a background job. Call it periodically nevertheless if
        resources should show the right status without anyone asking.

        Room bookings do not expire, they remain confirmed once they are
        over. Their rooms become available again all the same.

        """

        now = self.now()
        expired: list[Reservation] = []

        if self.policy.expires:
            expired = self.queries.elapsed_claims(self.policy, now).all()

            for reservation in expired:
                reservation.status = 'expired'

            if expired:
                self.session.flush()
                log.info(
                    f'Expired {len(expired)} {self.kind} reservation(s)'
                )

        self.project_statuses(now=now)

        if expired:
            events.on_reservations_expired(self.context, expired)

        return expired

    # conflicts

    def conflicting_reservations(
        self,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude: int | None = None
    ) -> Query[Reservation]:
        """ The claims on the given resource overlapping [start, end),
        without the reservation with the id ``exclude``.

        """

        return self.queries.overlapping_claims(
            self.policy, resource_id, start, end, exclude
        )

    def has_conflict(
        self,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude: int | None = None
    ) -> bool:
        query = self.conflicting_reservations(
            resource_id, start, end, exclude
        )
        return self.session.query(query.exists()).scalar()  # type: ignore[no-any-return]

    def check_availability(
        self,
        resource_id: int,
        start: DateInput,
        end: DateInput
    ) -> bool:
        """ Returns True if the resource may be reserved for the given
        range, as far as other reservations are concerned.

        """

        self.expire_reservations()

        start, end = self._prepare_range(start, end)

        if end <= start:
            raise errors.EndBeforeStart()

        resource = self._resource(resource_id)

        return not self.has_conflict(resource.id, start, end)

    # lifecycle

    def _reservable_resource(self, resource_id: int) -> Resource:
        resource = self._resource(resource_id)

        if not resource.is_reservable:
            raise errors.ResourceUnavailable()

        return resource

    def _assert_no_conflict(
        self,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude: int | None = None
    ) -> None:
        existing = self.conflicting_reservations(
            resource_id, start, end, exclude
        ).first()

        if existing is not None:
            log.debug(f'Conflict of {start} - {end} with {existing!r}')
            raise errors.ConflictError(start, end, existing)

    def reserve(
        self,
        resource_id: int,
        actor: Actor,
        start: DateInput,
        end: DateInput,
        data: Mapping[str, Any] | None = None
    ) -> Reservation:
        """ Reserves the resource for the actor. Returns the new
        reservation, which holds the resource until it is cancelled,
        completed or (for stations) expired.

        The request is checked in the following order, the first failing
        check raises:

        1. all parameters are present and the dates are valid
        2. the end is after the start
        3. the start is not in the past
        4. the reservation is not longer than the maximum (stations)
        5. the actor holds no other reservation (stations)
        6. the resource exists and may be reserved
        7. no other reservation overlaps

        :resource_id:
            The id of the room or station.

        :actor:
            The :class:`campusres.modules.actors.Actor` making the request.

        :start, end:
            Datetimes or ISO-8601 strings. Naive values are assumed to be
            in the timezone of the scheduler.

        :data:
            Free-form attributes like the purpose or notes, stored in the
            attribute store. Values need to be json serializable.

        """

        self.expire_reservations()

        if resource_id is None or actor is None:
            raise errors.ReservationParametersInvalid()

        start, end = self._prepare_range(start, end)
        now = self.now()

        if end <= start:
            raise errors.EndBeforeStart()

        if start < now:
            raise errors.ReservationInPast()

        max_duration = self.policy.max_duration
        if max_duration is not None and end - start > max_duration:
            hours = max_duration / timedelta(hours=1)
            raise errors.ReservationTooLong(
                f'Reservation duration cannot exceed {hours:g} hours'
            )

        if self.policy.single_claim:
            existing = self.queries.claims_by_actor(
                self.policy, actor.id, now
            ).first()

            if existing is not None:
                lab = existing.resource.lab
                raise errors.DuplicateActiveReservationError(
                    existing,
                    existing.resource.label,
                    lab.label if lab else None
                )

        resource = self._reservable_resource(resource_id)
        self._assert_no_conflict(resource.id, start, end)

        reservation = Reservation(
            resource=resource,
            kind=self.kind,
            actor=actor.id,
            start=start,
            end=end,
            timezone=self.timezone,
            status=self.policy.claim_status,
            alert_sent=False
        )

        self.session.add(reservation)
        self._flush(start, end)

        if data:
            self.attributes.set('reservation', reservation.id, data)

        self.project_status(resource)

        events.on_reservation_made(self.context, reservation)

        return reservation

    def _reservation(self, id: int) -> Reservation:
        query = self.managed_reservations().filter(Reservation.id == id)
        reservation = query.first()

        if reservation is None:
            raise errors.UnknownReservation()

        return reservation

    def _changeable_reservation(self, id: int, actor: Actor) -> Reservation:
        reservation = self._reservation(id)

        if not self.authorization.may_change(actor, reservation):
            raise errors.AuthorizationError()

        if not reservation.is_claim:
            raise errors.ReservationNotActive(
                f'Reservation is {reservation.status}'
            )

        return reservation

    def cancel(self, reservation_id: int, actor: Actor) -> Reservation:
        """ Cancels the reservation, which releases its resource. Only the
        owner or an administrator may cancel and only reservations which
        still hold their resource can be cancelled.

        """

        self.expire_reservations()

        reservation = self._changeable_reservation(reservation_id, actor)
        reservation.status = 'cancelled'

        self.project_status(reservation.resource)

        events.on_reservation_cancelled(self.context, reservation)

        return reservation

    def complete_reservation(
        self,
        reservation_id: int,
        actor: Actor
    ) -> Reservation:
        """ Releases a station before the end of its reservation. """

        if not self.policy.completable:
            raise errors.OperationNotSupported()

        self.expire_reservations()

        reservation = self._changeable_reservation(reservation_id, actor)
        reservation.status = 'completed'

        self.project_status(reservation.resource)

        events.on_reservation_completed(self.context, reservation)

        return reservation

    def change_reservation(
        self,
        reservation_id: int,
        actor: Actor,
        resource_id: int | None = None,
        start: DateInput | None = None,
        end: DateInput | None = None,
        data: Mapping[str, Any] | None = None
    ) -> Reservation:
        """ Moves a room booking to another room or time and updates its
        attributes. Parameters left at None keep their current value.

        The new range is checked like a new booking, except that it may
        overlap the booking itself and that it may lie in the past.

        Only rooms support this, station reservations have to be cancelled
        and made again.

        """

        if not self.policy.changeable:
            raise errors.OperationNotSupported()

        self.expire_reservations()

        reservation = self._changeable_reservation(reservation_id, actor)

        new_start, new_end = self._prepare_range(
            reservation.start if start is None else start,
            reservation.end if end is None else end
        )

        if new_end <= new_start:
            raise errors.EndBeforeStart()

        old_resource = reservation.resource
        new_resource = old_resource

        if resource_id is not None and resource_id != old_resource.id:
            new_resource = self._reservable_resource(resource_id)

        self._assert_no_conflict(
            new_resource.id, new_start, new_end, exclude=reservation.id
        )

        old_time = (reservation.display_start(), reservation.display_end())

        reservation.resource = new_resource
        reservation.start = new_start
        reservation.end = new_end

        self._flush(new_start, new_end)

        if data:
            self.attributes.set('reservation', reservation.id, data)

        self.project_status(old_resource)

        if new_resource is not old_resource:
            self.project_status(new_resource)

        events.on_reservation_changed(
            self.context,
            reservation,
            old_time=old_time,
            new_time=(
                reservation.display_start(),
                reservation.display_end()
            )
        )

        return reservation

    # queries

    def reservations(
        self,
        resource_id: int | None = None,
        actor_id: int | None = None,
        status: ReservationStatus | None = None,
        mine: Actor | None = None,
        start: DateInput | None = None,
        end: DateInput | None = None
    ) -> list[Reservation]:
        """ Lists the reservations of this kind, ordered by start. Stations
        list the latest reservations first.

        :resource_id:
            Only the reservations of this resource.

        :actor_id:
            Only the reservations of this user.

        :status:
            Only the reservations with this status.

        :mine:
            Only the reservations of the given actor. Same as ``actor_id``,
            for callers holding an :class:`Actor`.

        :start, end:
            Only the reservations overlapping this range. With only a
            start, the reservations ending after it. With only an end, the
            reservations starting before it.

        """

        self.expire_reservations()

        query = self.managed_reservations()

        if resource_id is not None:
            query = query.filter(Reservation.resource_id == resource_id)

        if actor_id is not None:
            query = query.filter(Reservation.actor == actor_id)

        if mine is not None:
            query = query.filter(Reservation.actor == mine.id)

        if status is not None:
            query = query.filter(Reservation.status == status)

        if start is not None and end is not None:
            range_start, range_end = self._prepare_range(start, end)

            if range_end <= range_start:
                raise errors.EndBeforeStart()

            query = self.queries.overlapping(query, range_start, range_end)

        elif start is not None:
            range_start = utils.parse_datetime(start, self.timezone)
            query = query.filter(Reservation.end > range_start)

        elif end is not None:
            range_end = utils.parse_datetime(end, self.timezone)
            query = query.filter(Reservation.start < range_end)

        if self.policy.newest_first:
            return query.order_by(
                Reservation.start.desc(),
                Reservation.id.desc()
            ).all()

        return query.order_by(Reservation.start, Reservation.id).all()

    def reservation_by_id(self, id: int) -> Reservation:
        self.expire_reservations()
        return self._reservation(id)

    def reservation_data(self, id: int) -> dict[str, Any]:
        return self.attributes.get('reservation', self._reservation(id).id)

    def active_claim(self, actor: Actor) -> Reservation | None:
        """ The reservation currently held by the actor, the one running
        right now or the next one to start.

        """
        self.expire_reservations()

        query = self.queries.claims_by_actor(self.policy, actor.id, self.now())
        return query.first()

    def check_expiring_soon(
        self,
        actor: Actor,
        within_minutes: int | None = None
    ) -> Reservation | None:
        """ Returns the actor's reservation ending within the given number
        of minutes (``settings.expiring_soon_minutes`` by default), or None.

        Each reservation is only returned once. It is flagged as alerted,
        so asking again returns None until another reservation is about to
        end.

        """

        if not self.policy.expires:
            raise errors.OperationNotSupported()

        self.expire_reservations()

        if within_minutes is None:
            within_minutes = self.context.get_setting('expiring_soon_minutes')

        assert within_minutes is not None
        now = self.now()
        horizon = now + timedelta(minutes=within_minutes)

        query = self.queries.claims_by_actor(self.policy, actor.id, now)
        query = query.filter(Reservation.end <= horizon)
        query = query.filter(Reservation.alert_sent.is_(False))

        reservation = query.order_by(None).order_by(Reservation.end).first()

        if reservation is None:
            return None

        reservation.alert_sent = True

        events.on_reservation_expiring(self.context, reservation)

        return reservation
