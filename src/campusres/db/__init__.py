from __future__ import annotations

from campusres.db.queries import Queries
from campusres.db.scheduler import Scheduler
from campusres.modules.policies import KINDS


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from campusres.context.core import Context
    from campusres.modules.policies import ResourceKind


def new_scheduler(
    context: Context,
    kind: ResourceKind,
    timezone: str
) -> Scheduler:
    """ Creates a new scheduler for the rooms or the stations of the
    given context. Raises a ValueError for an unknown kind.

    """
    if kind not in KINDS:
        raise ValueError(f'Unknown kind of resource: {kind}')

    return Scheduler(context, kind, timezone)


__all__ = ('new_scheduler', 'Queries', 'Scheduler')
