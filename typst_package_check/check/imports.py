"""Import graph resolution.

The graph is built by a work-list traversal from the package entrypoints.
Nodes are package-relative paths stored in an arena and referenced by
integer index; edges point at node indices, so cycles need no special
handling during construction. Cycles are found afterwards with an
iterative Tarjan pass over the internal edges.
"""

from __future__ import annotations

import logging
import posixpath
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from ..core.exceptions import InvalidPackageSpec
from ..package.loader import Registry
from ..package.source import FileSet, Package
from ..package.spec import PackageSpec
from .syntax import Directive, ParsedSource, parse_source

logger = logging.getLogger(__name__)


class EdgeKind(str, Enum):
    RELATIVE = "relative"
    PACKAGE_SELF = "package-self"
    EXTERNAL = "external-package"


class EdgeStatus(str, Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    PACKAGE_NOT_FOUND = "package-not-found"
    UNCHECKED = "unchecked"


@dataclass(frozen=True)
class ImportEdge:
    """One ``import``/``include`` directive and what it resolved to."""

    source: int
    directive: Directive
    kind: EdgeKind
    status: EdgeStatus
    target: int | None = None
    package: PackageSpec | None = None
    problem: str | None = None

    @property
    def is_internal(self) -> bool:
        return self.target is not None and self.kind in (EdgeKind.RELATIVE, EdgeKind.PACKAGE_SELF)


@dataclass(frozen=True)
class ImportCycle:
    """One loop of imports, reported once and anchored at its smallest path."""

    anchor: str
    directive: Directive
    path: tuple[str, ...]

    @property
    def message(self) -> str:
        return "Import cycle: " + " -> ".join(self.path)


class ParseCache:
    """Parses Typst files on first access; one instance per analysis run."""

    def __init__(self, files: FileSet):
        self._files = files
        self._parsed: dict[str, ParsedSource | None] = {}

    def get(self, path: str) -> ParsedSource | None:
        if path not in self._parsed:
            source = self._files.get(path)
            if source is None or not source.is_typst or source.text is None:
                self._parsed[path] = None
            else:
                self._parsed[path] = parse_source(source.text)
        return self._parsed[path]

    def __iter__(self) -> Iterator[tuple[str, ParsedSource]]:
        for source in self._files.typst_files():
            parsed = self.get(source.path)
            if parsed is not None:
                yield source.path, parsed


@dataclass
class ImportGraph:
    nodes: list[str] = field(default_factory=list)
    index: dict[str, int] = field(default_factory=dict)
    edges: list[ImportEdge] = field(default_factory=list)
    outgoing: list[list[int]] = field(default_factory=list)
    entrypoints: list[int] = field(default_factory=list)
    cycles: list[ImportCycle] = field(default_factory=list)
    unreachable: list[str] = field(default_factory=list)

    def add_node(self, path: str) -> int:
        node = self.index.get(path)
        if node is None:
            node = len(self.nodes)
            self.nodes.append(path)
            self.index[path] = node
            self.outgoing.append([])
        return node

    def add_edge(self, edge: ImportEdge) -> None:
        self.outgoing[edge.source].append(len(self.edges))
        self.edges.append(edge)

    def path_of(self, node: int) -> str:
        return self.nodes[node]

    def edges_from(self, path: str) -> list[ImportEdge]:
        node = self.index.get(path)
        if node is None:
            return []
        return [self.edges[e] for e in self.outgoing[node]]

    @property
    def reachable(self) -> set[str]:
        return set(self.nodes)

    def successors(self, node: int) -> list[int]:
        return [
            self.edges[e].target
            for e in self.outgoing[node]
            if self.edges[e].is_internal and self.edges[e].target is not None
        ]


def _resolve_relative(source: str, target: str) -> str | None:
    """Package-relative path of ``target`` imported from ``source``, None if it escapes."""
    if target.startswith("/"):
        joined = target.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source), target)
    normalized = posixpath.normpath(joined) if joined else "."
    if normalized in (".", "..") or normalized.startswith("../"):
        return None
    return normalized


def _is_self(spec: PackageSpec, package: Package) -> bool:
    if spec.name != package.name or str(spec.version) != package.version:
        return False
    return package.spec is None or package.spec.namespace == spec.namespace


class ImportResolver:
    """Builds the import graph of one package."""

    def __init__(self, package: Package, registry: Registry | None = None, parsed: ParseCache | None = None):
        self.package = package
        self.registry = registry
        self.parsed = parsed or ParseCache(package.files)

    def build(self) -> ImportGraph:
        graph = ImportGraph()
        files = self.package.files

        queue: deque[int] = deque()
        for entry in self.package.entrypoints:
            if entry in files:
                node = graph.add_node(entry)
                if node not in graph.entrypoints:
                    graph.entrypoints.append(node)
                    queue.append(node)

        visited: set[int] = set(queue)
        while queue:
            node = queue.popleft()
            parsed = self.parsed.get(graph.path_of(node))
            if parsed is None:
                continue
            for directive in parsed.directives:
                if directive.target is None:
                    continue
                edge = self._resolve(graph, node, directive)
                graph.add_edge(edge)
                if edge.is_internal and edge.target not in visited:
                    visited.add(edge.target)
                    queue.append(edge.target)

        graph.cycles = find_cycles(graph)
        if graph.entrypoints:
            graph.unreachable = [
                source.path
                for source in files.typst_files()
                if source.path not in graph.index and not self.package.is_excluded(source.path)
            ]

        logger.debug(
            f"Import graph for {self.package.label}: {len(graph.nodes)} files, "
            f"{len(graph.edges)} edges, {len(graph.cycles)} cycles"
        )
        return graph

    def _resolve(self, graph: ImportGraph, node: int, directive: Directive) -> ImportEdge:
        target = directive.target or ""
        if target.startswith("@"):
            return self._resolve_package(graph, node, directive)

        resolved = _resolve_relative(graph.path_of(node), target)
        if resolved is None:
            return ImportEdge(
                source=node,
                directive=directive,
                kind=EdgeKind.RELATIVE,
                status=EdgeStatus.UNRESOLVED,
                problem=f"`{target}` points outside of the package",
            )
        if resolved not in self.package.files:
            return ImportEdge(
                source=node,
                directive=directive,
                kind=EdgeKind.RELATIVE,
                status=EdgeStatus.UNRESOLVED,
                problem=f"`{target}` does not exist (resolved to `{resolved}`)",
            )
        return ImportEdge(
            source=node,
            directive=directive,
            kind=EdgeKind.RELATIVE,
            status=EdgeStatus.RESOLVED,
            target=graph.add_node(resolved),
        )

    def _resolve_package(self, graph: ImportGraph, node: int, directive: Directive) -> ImportEdge:
        target = directive.target or ""
        try:
            spec = PackageSpec.parse(target)
        except InvalidPackageSpec as e:
            return ImportEdge(
                source=node,
                directive=directive,
                kind=EdgeKind.EXTERNAL,
                status=EdgeStatus.UNRESOLVED,
                problem=str(e),
            )

        if _is_self(spec, self.package) and self.package.entrypoint in self.package.files:
            return ImportEdge(
                source=node,
                directive=directive,
                kind=EdgeKind.PACKAGE_SELF,
                status=EdgeStatus.RESOLVED,
                target=graph.add_node(self.package.entrypoint),
                package=spec,
            )

        if self.registry is None:
            status = EdgeStatus.UNCHECKED
        elif self.registry.has_package(spec):
            status = EdgeStatus.RESOLVED
        else:
            status = EdgeStatus.PACKAGE_NOT_FOUND
        return ImportEdge(source=node, directive=directive, kind=EdgeKind.EXTERNAL, status=status, package=spec)


def resolve_imports(package: Package, registry: Registry | None = None, parsed: ParseCache | None = None) -> ImportGraph:
    return ImportResolver(package, registry, parsed).build()


def strongly_connected_components(graph: ImportGraph) -> list[list[int]]:
    """Tarjan's algorithm with an explicit stack."""
    count = len(graph.nodes)
    order = [-1] * count
    low = [0] * count
    on_stack = [False] * count
    stack: list[int] = []
    components: list[list[int]] = []
    counter = 0

    for root in range(count):
        if order[root] != -1:
            continue
        order[root] = low[root] = counter
        counter += 1
        stack.append(root)
        on_stack[root] = True
        work = [(root, iter(graph.successors(root)))]

        while work:
            node, children = work[-1]
            descended = False
            for child in children:
                if order[child] == -1:
                    order[child] = low[child] = counter
                    counter += 1
                    stack.append(child)
                    on_stack[child] = True
                    work.append((child, iter(graph.successors(child))))
                    descended = True
                    break
                if on_stack[child]:
                    low[node] = min(low[node], order[child])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
            if low[node] == order[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack[member] = False
                    component.append(member)
                    if member == node:
                        break
                components.append(component)

    return components


def _cycle_path(graph: ImportGraph, start: int, anchor: int, members: set[int]) -> list[int]:
    """Shortest path from ``start`` back to ``anchor`` inside one component."""
    previous: dict[int, int | None] = {start: None}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        if node == anchor:
            break
        for child in graph.successors(node):
            if child in members and child not in previous:
                previous[child] = node
                queue.append(child)

    path = []
    node: int | None = anchor
    while node is not None:
        path.append(node)
        node = previous.get(node)
    return list(reversed(path))


def _rotate(graph: ImportGraph, loop: list[int]) -> tuple[int, ...]:
    """The loop started at its lexicographically smallest file."""
    start = min(range(len(loop)), key=lambda i: graph.path_of(loop[i]))
    return tuple(loop[start:] + loop[:start])


def find_cycles(graph: ImportGraph) -> list[ImportCycle]:
    """One cycle per distinct loop of imports.

    Inside each strongly connected component, every import edge not yet
    part of a reported loop yields the shortest loop through it. Every
    edge is covered, so two loops sharing a file are both reported, and
    a single long ring is walked only once.
    """
    loops: dict[tuple[int, ...], None] = {}
    for component in strongly_connected_components(graph):
        members = set(component)
        if len(component) == 1:
            node = component[0]
            if node not in graph.successors(node):
                continue

        covered: set[tuple[int, int]] = set()
        for node in sorted(component, key=graph.path_of):
            edges = sorted(
                (graph.edges[e] for e in graph.outgoing[node]),
                key=lambda edge: edge.directive.span.start,
            )
            for edge in edges:
                target = edge.target
                if not edge.is_internal or target not in members or (node, target) in covered:
                    continue
                if target == node:
                    loop = [node]
                else:
                    loop = [node] + _cycle_path(graph, target, node, members)[:-1]
                for i, member in enumerate(loop):
                    covered.add((member, loop[(i + 1) % len(loop)]))
                loops.setdefault(_rotate(graph, loop), None)

    cycles = []
    for loop in loops:
        anchor, following = loop[0], loop[1 % len(loop)]
        closing = min(
            (
                graph.edges[e]
                for e in graph.outgoing[anchor]
                if graph.edges[e].is_internal and graph.edges[e].target == following
            ),
            key=lambda edge: edge.directive.span.start,
        )
        cycles.append(ImportCycle(
            anchor=graph.path_of(anchor),
            directive=closing.directive,
            path=tuple(graph.path_of(node) for node in loop + (anchor,)),
        ))

    return sorted(cycles, key=lambda cycle: (cycle.anchor, cycle.path))
