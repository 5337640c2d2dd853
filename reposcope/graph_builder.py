"""Import dependency graphs over files and features.

Imports are resolved against the set of parsed files: relative specifiers
try the configured suffix list, bare specifiers are tried against the
repository root before being treated as external packages.  Cycle detection
is an iterative DFS; each cycle is reported once, in a rotation-independent
normal form.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import sys
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple, Union

from .config import DEFAULT_RESOLUTION_SUFFIXES
from .models import (
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    ExternalDependency,
    FeatureSummary,
    GraphStats,
    ParsedFile,
)

logger = logging.getLogger(__name__)

_ALIAS_PREFIXES = ("@/", "~/", "#")
_PYTHON_STDLIB = frozenset(getattr(sys, "stdlib_module_names", ())) | {"__future__"}


class ImportResolution(NamedTuple):
    """Outcome of resolving one import specifier.

    ``kind`` is ``internal`` (``path`` set, repo-relative posix),
    ``external`` (``package`` set) or ``unresolved``.
    """
    kind: str
    path: Optional[str] = None
    package: Optional[str] = None


UNRESOLVED = ImportResolution("unresolved")


def node_id_for(rel_path: str) -> str:
    """Repo-relative posix path with the extension dropped."""
    return re.sub(r"\.[^./]+$", "", rel_path.replace("\\", "/"))


def package_name(source: str, python: bool = False) -> str:
    if python:
        return source.split(".")[0]
    parts = source.split("/")
    if source.startswith("@") and len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


def normalize_cycle(cycle: Sequence[str]) -> Tuple[str, ...]:
    """Drop the closing duplicate and rotate so the smallest id comes first."""
    members = list(cycle)
    if len(members) > 1 and members[0] == members[-1]:
        members = members[:-1]
    if not members:
        return ()
    start = members.index(min(members))
    return tuple(members[start:] + members[:start])


def _posix(path: Union[str, Path]) -> str:
    return Path(path).as_posix()


class DependencyGraphBuilder:
    """Builds :class:`DependencyGraph` values; holds no state between calls."""

    def __init__(self, resolution_suffixes: Optional[Sequence[str]] = None) -> None:
        self.resolution_suffixes = list(resolution_suffixes or DEFAULT_RESOLUTION_SUFFIXES)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _try_candidates(self, base: str, known_files: Set[str]) -> Optional[str]:
        for suffix in self.resolution_suffixes:
            if base + suffix in known_files:
                return base + suffix
        if base in known_files:
            return base
        return None

    def resolve_import(
        self,
        source: str,
        from_file: Union[str, Path],
        repo_path: Union[str, Path],
        known_files: Set[str],
    ) -> ImportResolution:
        """Classify *source* as imported by *from_file*.

        *known_files* holds absolute posix paths of every file that may be
        the target of an internal import.
        """
        if not source:
            return UNRESOLVED
        from_posix = _posix(from_file)
        repo = _posix(repo_path).rstrip("/")
        from_dir = posixpath.dirname(from_posix)
        is_python = from_posix.endswith(".py")

        def internal(found: str) -> ImportResolution:
            return ImportResolution("internal", path=posixpath.relpath(found, repo))

        # Relative: ./x, ../x (JS) or .x, ..pkg.mod (Python)
        if source.startswith("."):
            if is_python and "/" not in source:
                dots = len(source) - len(source.lstrip("."))
                base = from_dir
                for _ in range(dots - 1):
                    base = posixpath.dirname(base)
                rest = source[dots:].replace(".", "/")
                candidate = posixpath.join(base, rest) if rest else base
                found = self._try_candidates(candidate, known_files)
            else:
                found = self._try_candidates(posixpath.normpath(posixpath.join(from_dir, source)), known_files)
            return internal(found) if found else UNRESOLVED

        if source.startswith("/"):
            found = self._try_candidates(posixpath.normpath(repo + source), known_files)
            return internal(found) if found else UNRESOLVED

        if source.startswith(_ALIAS_PREFIXES):
            return UNRESOLVED

        # Bare: path-mapped import or a package
        rooted = source.replace(".", "/") if is_python else source
        found = self._try_candidates(posixpath.join(repo, rooted), known_files)
        if found:
            return internal(found)
        name = package_name(source, python=is_python)
        if is_python and name in _PYTHON_STDLIB:
            return UNRESOLVED
        return ImportResolution("external", package=name)

    # ------------------------------------------------------------------
    # File graph
    # ------------------------------------------------------------------

    def build_from_files(
        self,
        parsed_files: Iterable[ParsedFile],
        repo_path: Union[str, Path],
    ) -> DependencyGraph:
        files = {_posix(pf.file_path): pf for pf in parsed_files}
        known = set(files)
        repo = _posix(repo_path).rstrip("/")

        graph = DependencyGraph()
        edges: Dict[Tuple[str, str], DependencyEdge] = {}
        externals: Dict[str, ExternalDependency] = {}

        for abs_path, parsed in files.items():
            rel = posixpath.relpath(abs_path, repo)
            graph.nodes.append(DependencyNode(
                id=node_id_for(rel),
                name=posixpath.splitext(posixpath.basename(rel))[0],
                kind="file",
                path=rel,
                exported_names=[e.name for e in parsed.exports],
            ))

        for abs_path, parsed in files.items():
            rel = posixpath.relpath(abs_path, repo)
            source_id = node_id_for(rel)
            for imp in parsed.imports:
                resolution = self._resolve_symbol_import(imp.source, imp.name, abs_path, repo, known)
                if resolution.kind == "external":
                    dep = externals.setdefault(
                        resolution.package, ExternalDependency(package_name=resolution.package),
                    )
                    dep.import_count += 1
                    if rel not in dep.used_by:
                        dep.used_by.append(rel)
                elif resolution.kind == "internal":
                    target_id = node_id_for(resolution.path)
                    if target_id == source_id:
                        continue
                    symbol = "*" if imp.is_namespace else "default" if imp.is_default else imp.name
                    edge = edges.get((source_id, target_id))
                    if edge is None:
                        edge = edges[(source_id, target_id)] = DependencyEdge(source=source_id, target=target_id)
                        graph.edges.append(edge)
                    if symbol and symbol not in edge.symbols:
                        edge.symbols.append(symbol)
                else:
                    logger.debug("Unresolved import %r in %s", imp.source, rel)

        graph.circular_dependencies = self.detect_cycles(graph.nodes, graph.edges)
        graph.external_dependencies = self._rank_externals(externals.values())
        logger.info(
            "File graph: %d nodes, %d edges, %d cycles, %d external packages",
            len(graph.nodes), len(graph.edges),
            len(graph.circular_dependencies), len(graph.external_dependencies),
        )
        return graph

    def _resolve_symbol_import(
        self, source: str, name: str, from_file: str, repo: str, known: Set[str],
    ) -> ImportResolution:
        # ``from . import models`` names a module, not a symbol of __init__.
        if from_file.endswith(".py") and source and source.strip(".") == "" and name not in ("", "*"):
            resolution = self.resolve_import(source + name, from_file, repo, known)
            if resolution.kind == "internal":
                return resolution
        return self.resolve_import(source, from_file, repo, known)

    # ------------------------------------------------------------------
    # Feature graph
    # ------------------------------------------------------------------

    def build_feature_graph(self, features: Sequence[FeatureSummary]) -> DependencyGraph:
        graph = DependencyGraph()
        externals: Dict[str, ExternalDependency] = {}
        edges: Dict[Tuple[str, str], DependencyEdge] = {}

        for feature in features:
            graph.nodes.append(DependencyNode(
                id=feature.name,
                name=feature.name,
                kind="feature",
                path=feature.base_path,
                exported_names=[e.name for e in feature.exports],
            ))
            for package in feature.external_dependencies:
                dep = externals.setdefault(package, ExternalDependency(package_name=package))
                dep.import_count += 1
                if feature.name not in dep.used_by:
                    dep.used_by.append(feature.name)

        for feature in features:
            for dep_path in feature.internal_dependencies:
                target = self._owning_feature(dep_path, features)
                if target is None or target.name == feature.name:
                    continue
                edge = edges.get((feature.name, target.name))
                if edge is None:
                    edge = edges[(feature.name, target.name)] = DependencyEdge(
                        source=feature.name, target=target.name,
                    )
                    graph.edges.append(edge)
                if dep_path not in edge.symbols:
                    edge.symbols.append(dep_path)

        graph.circular_dependencies = self.detect_cycles(graph.nodes, graph.edges)
        graph.external_dependencies = self._rank_externals(externals.values())
        return graph

    @staticmethod
    def _owning_feature(dep_path: str, features: Sequence[FeatureSummary]) -> Optional[FeatureSummary]:
        """Feature whose base path contains *dep_path*; deepest base wins.

        Falls back to a feature named as a path segment of *dep_path*.
        """
        best: Optional[FeatureSummary] = None
        for feature in features:
            base = feature.base_path.rstrip("/")
            if base in ("", "."):
                continue
            if dep_path == base or dep_path.startswith(base + "/"):
                if best is None or len(base) > len(best.base_path.rstrip("/")):
                    best = feature
        if best is not None:
            return best
        segments = dep_path.split("/")
        return next((f for f in features if f.name in segments), None)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    @staticmethod
    def detect_cycles(nodes: Sequence[DependencyNode], edges: Sequence[DependencyEdge]) -> List[List[str]]:
        """Iterative DFS with an explicit recursion stack.

        A back edge to a node on the current path closes a cycle.  Cycles
        are normalized and deduplicated before they are returned.
        """
        adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
        for edge in edges:
            adjacency.setdefault(edge.source, []).append(edge.target)
            adjacency.setdefault(edge.target, [])

        visited: Set[str] = set()
        on_stack: Set[str] = set()
        seen_cycles: Set[Tuple[str, ...]] = set()
        cycles: List[List[str]] = []

        for root in adjacency:
            if root in visited:
                continue
            path: List[str] = [root]
            stack: List[Tuple[str, int]] = [(root, 0)]
            visited.add(root)
            on_stack.add(root)

            while stack:
                current, index = stack[-1]
                neighbours = adjacency[current]
                if index >= len(neighbours):
                    stack.pop()
                    path.pop()
                    on_stack.discard(current)
                    continue
                stack[-1] = (current, index + 1)
                nxt = neighbours[index]
                if nxt in on_stack:
                    cycle = normalize_cycle(path[path.index(nxt):])
                    if cycle and cycle not in seen_cycles:
                        seen_cycles.add(cycle)
                        cycles.append(list(cycle))
                elif nxt not in visited:
                    visited.add(nxt)
                    on_stack.add(nxt)
                    path.append(nxt)
                    stack.append((nxt, 0))
        return cycles

    @staticmethod
    def _rank_externals(externals: Iterable[ExternalDependency]) -> List[ExternalDependency]:
        return sorted(externals, key=lambda d: (-d.import_count, d.package_name))

    @staticmethod
    def stats(graph: DependencyGraph) -> GraphStats:
        outgoing = Counter(edge.source for edge in graph.edges)
        top_node, top_count = None, 0
        for node_id, count in outgoing.items():
            if count > top_count:
                top_node, top_count = node_id, count
        return GraphStats(
            total_nodes=len(graph.nodes),
            total_edges=len(graph.edges),
            avg_dependencies=sum(outgoing.values()) / len(graph.nodes) if graph.nodes else 0.0,
            max_dependencies_node=top_node,
            max_dependencies_count=top_count,
            circular_count=len(graph.circular_dependencies),
            external_packages=len(graph.external_dependencies),
            most_used_external=graph.external_dependencies[0] if graph.external_dependencies else None,
        )

    @staticmethod
    def dependents(graph: DependencyGraph, node_id: str) -> List[str]:
        return [edge.source for edge in graph.edges if edge.target == node_id]

    @staticmethod
    def dependencies(graph: DependencyGraph, node_id: str) -> List[str]:
        return [edge.target for edge in graph.edges if edge.source == node_id]


def known_files_for(paths: Iterable[Union[str, Path]]) -> Set[str]:
    """Absolute posix paths usable as the ``known_files`` argument."""
    return {_posix(os.path.abspath(p)) for p in paths}
