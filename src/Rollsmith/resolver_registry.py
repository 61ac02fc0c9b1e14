from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

# handler(request, ctx) -> list of field results, or a RollError to abort the run
Handler = Callable[[Any, Any], Awaitable[Any]]


@dataclass(frozen=True)
class ResolverSpec:
    kind: str
    request_type: type
    handler: Handler


class ResolverRegistry(Protocol):
    def list_resolvers(self) -> dict[type, ResolverSpec]:
        ...

    def get(self, request_type: type) -> ResolverSpec | None:
        ...


class InMemoryResolverRegistry:
    def __init__(self) -> None:
        self._resolvers: dict[type, ResolverSpec] = {}

    def register(self, spec: ResolverSpec) -> None:
        self._resolvers[spec.request_type] = spec

    def list_resolvers(self) -> dict[type, ResolverSpec]:
        return dict(self._resolvers)

    def get(self, request_type: type) -> ResolverSpec | None:
        return self._resolvers.get(request_type)
