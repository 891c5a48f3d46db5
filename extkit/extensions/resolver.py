"""Dependency Resolver: activation order split into immediate and lazy partitions."""

import heapq
import logging
from dataclasses import dataclass, field

from extkit.extensions.contract import Extension
from extkit.extensions.errors import CycleDetected, UnresolvedDependency
from extkit.extensions.registry import Registry

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Ordered activation plan. Excluded extensions are reported, never silently dropped."""

    immediate: list[Extension] = field(default_factory=list)
    lazy: list[Extension] = field(default_factory=list)
    unresolved: list[UnresolvedDependency] = field(default_factory=list)
    skipped: list[Extension] = field(default_factory=list)

    @property
    def order(self) -> list[Extension]:
        """Immediate then lazy, each in resolver order."""
        return self.immediate + self.lazy


def _sort_key(ext: Extension) -> tuple[bool, int, int]:
    # Lower priority first, absent priority after all prioritized ones, then registration order.
    return (ext.priority is None, ext.priority or 0, ext.seq)


class DependencyResolver:
    """Topological sort over depends-on edges with priority/registration tie-break."""

    def resolve(self, registry: Registry) -> Resolution:
        """Compute the activation plan. Raises CycleDetected when no valid order exists."""
        extensions = registry.all()
        result = Resolution(skipped=[e for e in extensions if not e.enabled])
        enabled = {e.name: e for e in extensions if e.enabled}

        excluded = self._exclude_unresolved(extensions, enabled)
        result.unresolved = list(excluded.values())
        nodes = {name: e for name, e in enabled.items() if name not in excluded}

        order = self._topological_order(nodes)
        if len(order) < len(nodes):
            placed = {e.name for e in order}
            remaining = {n: e for n, e in nodes.items() if n not in placed}
            raise CycleDetected(self._find_cycles(remaining))

        result.immediate = [e for e in order if not e.lazy]
        result.lazy = [e for e in order if e.lazy]
        logger.debug(
            "Resolved %d immediate, %d lazy, %d unresolved, %d skipped",
            len(result.immediate),
            len(result.lazy),
            len(result.unresolved),
            len(result.skipped),
        )
        return result

    def _exclude_unresolved(
        self, extensions: list[Extension], enabled: dict[str, Extension]
    ) -> dict[str, UnresolvedDependency]:
        """Missing or disabled dependencies exclude the dependent and, transitively, its dependents."""
        excluded: dict[str, UnresolvedDependency] = {}
        changed = True
        while changed:
            changed = False
            for ext in extensions:
                if not ext.enabled or ext.name in excluded:
                    continue
                for dep in ext.dependencies:
                    if dep not in enabled:
                        excluded[ext.name] = UnresolvedDependency(ext.name, dep)
                    elif dep in excluded:
                        cause = excluded[dep]
                        excluded[ext.name] = UnresolvedDependency(
                            ext.name, cause.missing, (dep, *cause.via)
                        )
                    else:
                        continue
                    logger.warning("%s", excluded[ext.name])
                    changed = True
                    break
        return dict(sorted(excluded.items(), key=lambda item: enabled[item[0]].seq))

    def _topological_order(self, nodes: dict[str, Extension]) -> list[Extension]:
        """Kahn's algorithm; the ready set is a heap keyed by _sort_key."""
        in_degree = {name: 0 for name in nodes}
        dependents: dict[str, list[str]] = {name: [] for name in nodes}
        for name, ext in nodes.items():
            for dep in ext.dependencies:
                in_degree[name] += 1
                dependents[dep].append(name)

        ready = [(_sort_key(e), name) for name, e in nodes.items() if in_degree[name] == 0]
        heapq.heapify(ready)
        order: list[Extension] = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(nodes[name])
            for dependent in dependents[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (_sort_key(nodes[dependent]), dependent))
        return order

    def _find_cycles(self, nodes: dict[str, Extension]) -> list[list[str]]:
        """Strongly connected components (Tarjan) that contain a cycle, members in registration order."""
        index: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        stack: list[str] = []
        on_stack: set[str] = set()
        cycles: list[list[str]] = []

        def visit(name: str) -> None:
            index[name] = lowlink[name] = len(index)
            stack.append(name)
            on_stack.add(name)
            for dep in nodes[name].dependencies:
                if dep not in nodes:
                    continue
                if dep not in index:
                    visit(dep)
                    lowlink[name] = min(lowlink[name], lowlink[dep])
                elif dep in on_stack:
                    lowlink[name] = min(lowlink[name], index[dep])
            if lowlink[name] != index[name]:
                return
            component: list[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == name:
                    break
            if len(component) > 1 or name in nodes[name].dependencies:
                cycles.append(sorted(component, key=lambda n: nodes[n].seq))

        for name in sorted(nodes, key=lambda n: nodes[n].seq):
            if name not in index:
                visit(name)
        return sorted(cycles, key=lambda c: nodes[c[0]].seq)
