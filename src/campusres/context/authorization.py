from __future__ import annotations


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Collection

    from campusres.db.models import Reservation
    from campusres.modules.actors import Actor


class Authorization:
    """ Decides who may act on a reservation. Replace the service on your
    context to plug in your own role model.

    """

    def __init__(self, administrator_roles: Collection[str]):
        self.administrator_roles = frozenset(administrator_roles)

    def is_administrator(self, actor: Actor) -> bool:
        return actor.role in self.administrator_roles

    def may_change(self, actor: Actor, reservation: Reservation) -> bool:
        return reservation.actor == actor.id or self.is_administrator(actor)
