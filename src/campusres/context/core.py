from __future__ import annotations

import campusres
import enum
import threading
from contextlib import contextmanager
from functools import cached_property

from campusres.modules import errors


from typing import Any
from typing import Literal
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Callable
    from collections.abc import Iterator
    from datetime import datetime
    from sqlalchemy.orm import Session
    from typing_extensions import TypeAlias

    from campusres.context.authorization import Authorization
    from campusres.context.registry import Registry
    from campusres.context.session import SessionProvider


class _Marker(enum.Enum):
    missing = enum.auto()
    required = enum.auto()


missing_t: TypeAlias = Literal[_Marker.missing]  # noqa: PYI042
required_t: TypeAlias = Literal[_Marker.required]  # noqa: PYI042
missing: missing_t = _Marker.missing
required: required_t = _Marker.required


class StoppableService:
    """ Services inheriting from this class have their stop_service method
    called when they are replaced on a context by another service.

    """

    def stop_service(self) -> None:
        pass


class ContextServicesMixin:
    """ Gives access to the services of ``self.context``, which the class
    using the mixin has to provide.

    """

    context: Context

    @cached_property
    def authorization(self) -> Authorization:
        return self.context.get_service('authorization')  # type: ignore[no-any-return]

    def clear_cache(self) -> None:
        """ Forgets the cached services, use after changing the context. """

        try:
            del self.authorization
        except AttributeError:
            pass

    def now(self) -> datetime:
        """ The current time (UTC, timezone aware) as told by the clock
        service. Not cached, so tests may swap the clock at any time.

        """
        clock: Callable[[], datetime] = self.context.get_service('clock')
        return clock()

    @property
    def session_provider(self) -> SessionProvider:
        return self.context.get_service('session_provider')  # type: ignore[no-any-return]

    @property
    def session(self) -> Session:
        """ Returns the current session. """
        return self.session_provider.session()  # type: ignore[no-any-return]

    def close(self) -> None:
        self.session.close()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class Context:
    """ Holds the settings and services campusres uses, like the database
    connection string, the maximum duration of station reservations or the
    clock used to tell the time.

    Each application using campusres registers its own context. Settings
    and services not found on that context are looked up on the master
    context of the registry, which carries the defaults::

        from campusres import registry

        context = registry.register_context('university')
        context.set_setting('dsn', 'postgresql://...')

    """

    def __init__(
        self,
        name: str,
        registry: Registry | None = None,
        parent: Context | None = None
    ):
        self.name = name
        self.registry = registry or campusres.registry
        self.values: dict[str, Any] = {}
        self.parent = parent
        self.locked = False
        self.thread_lock = threading.RLock()

    def __repr__(self) -> str:
        return f"<Campusres Context(name='{self.name}')>"

    @contextmanager
    def as_current_context(self) -> Iterator[None]:
        with self.registry.context(self.name):
            yield

    def lock(self) -> None:
        with self.thread_lock:
            self.locked = True

    def unlock(self) -> None:
        with self.thread_lock:
            self.locked = False

    def get(self, key: str) -> Any | missing_t:
        if key in self.values:
            return self.values[key]
        elif self.parent:
            return self.parent.get(key)
        else:
            return missing

    def set(self, key: str, value: Any) -> None:
        if self.locked:
            raise errors.ContextIsLocked(f'{self.name} is locked')

        with self.thread_lock:
            previous = self.values.get(key)

            if isinstance(previous, StoppableService):
                previous.stop_service()

            self.values[key] = value

    def get_setting(self, name: str) -> Any:
        return self.get(f'settings.{name}')

    def set_setting(self, name: str, value: Any) -> None:
        self.set(f'settings.{name}', value)

    def get_service(self, name: str) -> Any:
        service_id = f'service/{name}'
        factory = self.get(service_id)

        if factory is missing:
            raise errors.UnknownService(service_id)

        cache_id = f'service/{name}/cache'
        cache = self.get(cache_id)

        if cache is missing:
            return factory(self)

        # each context caches its own instance, even if the factory is
        # inherited from the parent context
        if cache is required or cache_id not in self.values:
            with self.thread_lock:
                self.set(cache_id, factory(self))

        return self.values[cache_id]

    def set_service(
        self,
        name: str,
        factory: Callable[[Context], Any],
        cache: bool = False
    ) -> None:
        with self.thread_lock:
            self.set(f'service/{name}', factory)

            if cache:
                self.set(f'service/{name}/cache', required)
