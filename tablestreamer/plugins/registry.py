"""Identifier -> factory registries for pluggable pipeline components."""

from __future__ import annotations

from typing import Callable, Dict, Generic, List, TypeVar

T = TypeVar("T")


class Registry(Generic[T]):
    """Named factories for one kind of plugin.

    Registries are plain objects owned by an ``IngestionContext``; there is no
    module-level instance to mutate.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._factories: Dict[str, Callable[..., T]] = {}

    def register(self, name: str, factory: Callable[..., T]) -> Callable[..., T]:
        self._factories[name.strip().lower()] = factory
        return factory

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._factories

    def names(self) -> List[str]:
        return sorted(self._factories)

    def create(self, name: str, *args, **kwargs) -> T:
        try:
            factory = self._factories[name.strip().lower()]
        except KeyError:
            raise KeyError(f"Unknown {self.kind}: {name!r} (known: {', '.join(self.names())})") from None
        return factory(*args, **kwargs)

    def copy(self) -> "Registry[T]":
        clone: Registry[T] = Registry(self.kind)
        clone._factories = dict(self._factories)
        return clone
