from __future__ import annotations

import threading

from contextlib import contextmanager

from campusres.modules import errors
from campusres.context.core import Context


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Callable
    from collections.abc import Iterator
    from datetime import datetime


def create_default_registry() -> Registry:
    """ Creates a registry whose master context carries the default
    settings and services.

    """

    import sedate

    from campusres.context.authorization import Authorization
    from campusres.context.session import SessionProvider
    from campusres.context.settings import set_default_settings

    registry = Registry()

    def session_provider_factory(context: Context) -> SessionProvider:
        return SessionProvider(context.get_setting('dsn'))

    def authorization_factory(context: Context) -> Authorization:
        return Authorization(context.get_setting('administrator_roles'))

    def clock_factory(context: Context) -> Callable[[], datetime]:
        return sedate.utcnow

    master = registry.master_context
    assert master is not None
    master.set_service('session_provider', session_provider_factory, cache=True)
    master.set_service('authorization', authorization_factory)
    master.set_service('clock', clock_factory)

    set_default_settings(master)

    master.lock()

    return registry


class Registry:
    """ Holds the contexts by name and keeps track of the current context
    of each thread.

    A global registry is found in campusres::

        from campusres import registry

    Applications wishing to avoid global state create their own::

        from campusres.context.registry import create_default_registry
        registry = create_default_registry()

    """

    contexts: dict[str, Context]
    master_context: Context | None = None

    def __init__(self) -> None:
        self.thread_lock = threading.RLock()

        with self.thread_lock:
            self.contexts = {}
            self.local = threading.local()

        self.master_context = self.register_context('master')

    @property
    def current_context(self) -> Context:
        if not hasattr(self.local, 'current_context'):
            self.local.current_context = self.master_context

        return self.local.current_context  # type: ignore[no-any-return]

    def is_existing_context(self, name: str) -> bool:
        return name in self.contexts

    def assert_exists(self, name: str) -> None:
        if not self.is_existing_context(name):
            raise errors.UnknownContext(name)

    def assert_does_not_exist(self, name: str) -> None:
        if self.is_existing_context(name):
            raise errors.ContextAlreadyExists(name)

    def register_context(self, name: str, replace: bool = False) -> Context:
        """ Registers a new context with the given name and returns it.
        Existing contexts are only replaced if ``replace`` is True and the
        existing context is not locked.

        """
        with self.thread_lock:
            if replace:
                existing = self.contexts.get(name)
                if existing is not None and existing.locked:
                    raise errors.ContextIsLocked(name)
            else:
                self.assert_does_not_exist(name)

            self.contexts[name] = Context(
                name,
                registry=self,
                parent=self.master_context
            )

            return self.contexts[name]

    def switch_context(self, name: str) -> None:
        with self.thread_lock:
            self.assert_exists(name)
            self.local.current_context = self.contexts[name]

    @contextmanager
    def context(self, name: str) -> Iterator[Context]:
        previous = self.current_context.name
        self.switch_context(name)
        try:
            yield self.current_context
        finally:
            self.switch_context(previous)

    def get_context(self, name: str, autocreate: bool = False) -> Context:
        if autocreate and not self.is_existing_context(name):
            return self.register_context(name)

        self.assert_exists(name)
        return self.contexts[name]
