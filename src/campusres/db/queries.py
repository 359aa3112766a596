from __future__ import annotations

from sqlalchemy import case
from sqlalchemy import func
from sqlalchemy.sql import and_, or_

from campusres.context.core import ContextServicesMixin
from campusres.db.models import Reservation


from typing import TypeVar
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime
    from sqlalchemy.orm import Query

    from campusres.context.core import Context
    from campusres.modules.policies import Policy

_T = TypeVar('_T')


class Queries(ContextServicesMixin):
    """ The queries behind the :class:`.scheduler.Scheduler`. They only
    read, changing records is up to the scheduler.

    """

    def __init__(self, context: Context):
        self.context = context

    @staticmethod
    def overlapping(
        query: Query[_T],
        start: datetime,
        end: datetime
    ) -> Query[_T]:
        """ Takes a reservation query and limits it to the reservations
        overlapping the half-open range [start, end).

        A reservation overlaps if it starts at or before the start and ends
        after it, if it starts before the end and ends at or after it, or
        if it lies within the range. Reservations ending exactly at the
        start (or starting exactly at the end) do not overlap.

        """
        return query.filter(
            or_(
                and_(
                    Reservation.start <= start,
                    start < Reservation.end
                ),
                and_(
                    Reservation.start < end,
                    end <= Reservation.end
                ),
                and_(
                    start <= Reservation.start,
                    Reservation.end <= end
                )
            )
        )

    def claims(self, policy: Policy) -> Query[Reservation]:
        """ The reservations currently holding a resource of the policy's
        kind.

        """
        query = self.session.query(Reservation)
        query = query.filter(Reservation.kind == policy.kind)
        query = query.filter(Reservation.status == policy.claim_status)

        return query

    def overlapping_claims(
        self,
        policy: Policy,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude: int | None = None
    ) -> Query[Reservation]:

        query = self.claims(policy)
        query = query.filter(Reservation.resource_id == resource_id)
        query = self.overlapping(query, start, end)

        if exclude is not None:
            query = query.filter(Reservation.id != exclude)

        return query.order_by(Reservation.start)

    def claims_by_actor(
        self,
        policy: Policy,
        actor_id: int,
        after: datetime
    ) -> Query[Reservation]:
        """ The claims of the given actor which end after the given date. """

        query = self.claims(policy)
        query = query.filter(Reservation.actor == actor_id)
        query = query.filter(Reservation.end > after)

        return query.order_by(Reservation.start)

    def elapsed_claims(
        self,
        policy: Policy,
        now: datetime
    ) -> Query[Reservation]:

        query = self.claims(policy)
        query = query.filter(Reservation.end <= now)

        return query

    def running_claims(
        self,
        policy: Policy,
        now: datetime,
        resource_ids: Collection[int] | None = None
    ) -> Query[Reservation]:
        """ The claims covering the given moment. There is at most one per
        resource.

        """

        query = self.claims(policy)
        query = query.filter(Reservation.start <= now)
        query = query.filter(Reservation.end > now)

        if resource_ids is not None:
            query = query.filter(Reservation.resource_id.in_(resource_ids))

        return query

    def claim_counts(
        self,
        policy: Policy,
        now: datetime,
        resource_ids: Collection[int] | None = None
    ) -> dict[int, tuple[int, int]]:
        """ Returns a dictionary with the resource id as key and a tuple of
        the number of running and the number of upcoming claims as value.
        Resources without any remaining claims are left out.

        """
        running = func.sum(case((Reservation.start <= now, 1), else_=0))

        query: Query[tuple[int, int | None, int]]
        query = self.session.query(
            Reservation.resource_id,
            running,
            func.count(Reservation.id)
        )
        query = query.filter(Reservation.kind == policy.kind)
        query = query.filter(Reservation.status == policy.claim_status)
        query = query.filter(Reservation.end > now)

        if resource_ids is not None:
            query = query.filter(Reservation.resource_id.in_(resource_ids))

        query = query.group_by(Reservation.resource_id)

        return {
            resource_id: (running_count or 0, total - (running_count or 0))
            for resource_id, running_count, total in query
        }
