"""Host registries for commands, routes, event handlers and pages.

These are shared by the host and every plugin. Plugins never touch them
directly; their registrations go through the ownership tracker, which keeps
the Registration tokens needed to reverse them.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

_registration_ids = itertools.count(1)


@dataclass(frozen=True)
class Registration:
    """Token returned by a registry; the only way to unregister an entry."""

    registry: str
    identifier: str
    handler: Any = field(compare=False, repr=False)
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    id: int = field(default_factory=lambda: next(_registration_ids))


class Registry(Protocol):
    """Contract the plugin core expects from a host registry."""

    name: str

    def register(self, identifier: str, handler: Any, **metadata: Any) -> Registration: ...

    def unregister(self, registration: Registration) -> bool: ...

    def resolve(self, identifier: str) -> Optional[Registration]: ...

    def handlers(self, identifier: str) -> List[Registration]: ...

    def identifiers(self) -> List[str]: ...


class InMemoryRegistry:
    """Thread-safe registry keeping every registration per identifier.

    Several registrations may share an identifier. ``resolve`` returns the most
    recent one still registered, so removing one owner's entry uncovers the
    previous owner's instead of leaving the identifier dangling.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[str, List[Registration]] = {}
        self._lock = threading.Lock()

    def register(self, identifier: str, handler: Any, **metadata: Any) -> Registration:
        registration = Registration(self.name, identifier, handler, metadata)
        with self._lock:
            self._entries.setdefault(identifier, []).append(registration)
        logger.info(f"Registered {self.name} entry: {identifier}")
        return registration

    def unregister(self, registration: Registration) -> bool:
        with self._lock:
            entries = self._entries.get(registration.identifier, [])
            remaining = [r for r in entries if r.id != registration.id]
            removed = len(remaining) != len(entries)
            if remaining:
                self._entries[registration.identifier] = remaining
            else:
                self._entries.pop(registration.identifier, None)
        if removed:
            logger.info(f"Unregistered {self.name} entry: {registration.identifier}")
        return removed

    def resolve(self, identifier: str) -> Optional[Registration]:
        with self._lock:
            entries = self._entries.get(identifier)
            return entries[-1] if entries else None

    def handlers(self, identifier: str) -> List[Registration]:
        with self._lock:
            return list(self._entries.get(identifier, []))

    def identifiers(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def __contains__(self, identifier: str) -> bool:
        return self.resolve(identifier) is not None

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())


@dataclass
class HostRegistries:
    """The set of registries a plugin can reach through its capability surface."""

    commands: Registry = field(default_factory=lambda: InMemoryRegistry("commands"))
    routes: Registry = field(default_factory=lambda: InMemoryRegistry("routes"))
    events: Registry = field(default_factory=lambda: InMemoryRegistry("events"))
    pages: Registry = field(default_factory=lambda: InMemoryRegistry("pages"))

    def get(self, kind: str) -> Registry:
        """Look up a registry by resource kind ("command", "route", ...)."""
        registry = getattr(self, f"{kind}s", None)
        if registry is None:
            raise KeyError(f"No registry for resource kind '{kind}'")
        return registry

    def dispatch_event(self, event: str, *args: Any, **kwargs: Any) -> int:
        """Call every handler registered for an event; returns how many ran cleanly."""
        ok = 0
        for registration in self.events.handlers(event):
            handler: Callable = registration.handler
            try:
                handler(*args, **kwargs)
                ok += 1
            except Exception as e:
                logger.error(f"Error in {event} event handler: {e}")
        return ok
