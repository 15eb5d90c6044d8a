"""
Dependency resolver — bundles in install order (pure, no I/O).

Depth-first post-order from each requested name. ``on_stack`` holds the
names on the current path; meeting one again is a cycle. ``visited``
holds names already emitted, so each bundle appears once.
Dependencies are visited in declared order, roots in request order.
"""

from __future__ import annotations

from gdf.core.engine.errors import CircularDependencyError, MissingDependencyError
from gdf.core.models.bundle import Bundle


def resolve_apps(names: list[str], all_bundles: dict[str, Bundle]) -> list[Bundle]:
    """Order the bundles reachable from *names* so dependencies come first.

    Raises:
        CircularDependencyError: A cycle (self-dependency included) is reachable.
        MissingDependencyError: A requested or depended-on name is unknown.
    """
    result: list[Bundle] = []
    visited: set[str] = set()
    on_stack: set[str] = set()

    def visit(name: str) -> None:
        if name in on_stack:
            raise CircularDependencyError(name)
        if name in visited:
            return

        bundle = all_bundles.get(name)
        if bundle is None:
            raise MissingDependencyError(name)

        on_stack.add(name)
        for dep in bundle.dependencies:
            visit(dep)
        on_stack.discard(name)

        visited.add(name)
        result.append(bundle)

    for name in names:
        visit(name)

    return result
