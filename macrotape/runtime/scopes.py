"""Scope tree construction and path resolution for macrotape macros.

Scopes live in an arena (:class:`ScopeTree`) and refer to each other by
index: ``parent`` is the index of the enclosing scope and ``children`` maps
names to indices. Every macro definition creates a scope of its own, so a
macro's nested definitions are its children and the macro node doubles as
the scope its body is resolved against.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from .. import constants as _c
from .core import MacroDef, PathRef, ScopeError, SourceLocation


@dataclass(frozen=True)
class Alias:
    """Leaf binding created by ``use``: macro ``name`` defined in ``scope``."""

    scope: int
    name: str
    location: SourceLocation


class ScopeNode:
    def __init__(
        self,
        index: int,
        name: str,
        parent: Optional[int] = None,
        location: Optional[SourceLocation] = None,
    ):
        self.index = index
        self.name = name
        self.parent = parent
        self.location = location
        self.children: dict[str, int] = {}
        self.aliases: dict[str, Alias] = {}
        self.body: Optional[tuple] = None

    @property
    def is_macro(self) -> bool:
        return self.parent is not None

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        kind = "Macro" if self.is_macro else "Root"
        return f"{kind}({self.name}#{self.index})"


class ScopeTree:
    """Arena of scope nodes with one or more named roots."""

    def __init__(self):
        self.nodes: list[ScopeNode] = []
        self.roots: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ScopeNode]:
        return iter(self.nodes)

    def node(self, index: int) -> ScopeNode:
        return self.nodes[index]

    def root(self, name: str = _c.DEFAULT_ROOT) -> ScopeNode:
        try:
            return self.nodes[self.roots[name]]
        except KeyError:
            raise ScopeError(f"Unknown root scope '{name}'") from None

    def add_root(self, name: str) -> ScopeNode:
        if name in self.roots:
            raise ScopeError(f"Root scope '{name}' is already declared")
        node = ScopeNode(len(self.nodes), name)
        self.nodes.append(node)
        self.roots[name] = node.index
        return node

    def add_child(
        self, parent: int, name: str, location: Optional[SourceLocation] = None
    ) -> ScopeNode:
        scope = self.nodes[parent]
        if name in scope.children or name in scope.aliases:
            raise ScopeError(
                f"Macro '{name}' is already defined in scope "
                f"'{self.path_of(parent)}' at {location}",
                location,
            )
        node = ScopeNode(len(self.nodes), name, parent, location)
        self.nodes.append(node)
        scope.children[name] = node.index
        return node

    def bind_alias(
        self, scope_index: int, target: ScopeNode, location: SourceLocation
    ) -> Alias:
        scope = self.nodes[scope_index]
        name = target.name
        if name in scope.children or name in scope.aliases:
            raise ScopeError(
                f"Cannot import '{name}': the name is already bound in scope "
                f"'{self.path_of(scope_index)}' at {location}",
                location,
            )
        alias = Alias(target.parent, name, location)
        scope.aliases[name] = alias
        return alias

    def alias_target(self, alias: Alias) -> ScopeNode:
        return self.nodes[self.nodes[alias.scope].children[alias.name]]

    def path_of(self, index: int) -> str:
        parts: list[str] = []
        node: Optional[ScopeNode] = self.nodes[index]
        while node is not None:
            parts.append(node.name)
            node = self.nodes[node.parent] if node.parent is not None else None
        return _c.PATH_SEPARATOR.join(reversed(parts))

    def resolve(self, origin, ref: PathRef, trace: Optional[list] = None) -> ScopeNode:
        """Locate the macro ``ref`` names, starting from scope ``origin``.

        When ``trace`` is a list, each hop is appended to it as
        ``(kind, name, index)`` with kind ``up``, ``root``, ``alias`` or
        ``child``; on failure it holds the hops made before the error.
        """

        current = self.nodes[origin if isinstance(origin, int) else origin.index]
        loc = ref.location
        record = trace.append if trace is not None else (lambda hop: None)

        for _ in range(ref.up):
            if current.parent is None:
                raise ScopeError(
                    f"Path '{ref}' climbs above root scope '{current.name}' at {loc}",
                    loc,
                )
            current = self.nodes[current.parent]
            record(("up", current.name, current.index))

        steps = list(ref.steps)
        if ref.up == 0 and steps and steps[0] in self.roots:
            current = self.nodes[self.roots[steps.pop(0)]]
            record(("root", current.name, current.index))

        for position, name in enumerate(steps):
            terminal = position == len(steps) - 1
            if name in current.aliases:
                if not terminal:
                    raise ScopeError(
                        f"'{name}' in path '{ref}' is an imported alias and "
                        f"exposes no nested macros at {loc}",
                        loc,
                    )
                current = self.alias_target(current.aliases[name])
                record(("alias", name, current.index))
            elif name in current.children:
                current = self.nodes[current.children[name]]
                record(("child", name, current.index))
            else:
                raise ScopeError(
                    f"Unknown macro '{name}' in scope "
                    f"'{self.path_of(current.index)}' (path '{ref}') at {loc}",
                    loc,
                )

        if not current.is_macro:
            raise ScopeError(
                f"Path '{ref}' names scope '{current.name}', not a macro at {loc}",
                loc,
            )
        return current


def parse_path(text: str, location: Optional[SourceLocation] = None) -> PathRef:
    """Parse a bare path such as ``^^util/print`` into a :class:`PathRef`."""

    location = location or SourceLocation("<path>", 1, 1)
    body = text.lstrip(_c.UP_MARKER)
    up = len(text) - len(body)
    steps = tuple(body.split(_c.PATH_SEPARATOR)) if body else ()
    for step in steps:
        if not step or not all(ch == "_" or ch.isalpha() for ch in step):
            raise ScopeError(f"Invalid path component '{step}' in '{text}'", location)
    if not steps and not up:
        raise ScopeError("Empty macro path", location)
    return PathRef(up, steps, False, location)


def _collect_scope(tree: ScopeTree, scope: ScopeNode, items: Iterable) -> tuple:
    body = []
    for item in items:
        if isinstance(item, MacroDef):
            child = tree.add_child(scope.index, item.name, item.location)
            child.body = _collect_scope(tree, child, item.body)
        elif isinstance(item, PathRef) and item.is_import:
            try:
                target = tree.resolve(scope, item)
            except ScopeError as exc:
                raise ScopeError(
                    f"Cannot resolve import: {exc}", item.location
                ) from exc
            tree.bind_alias(scope.index, target, item.location)
        else:
            body.append(item)
    return tuple(body)


def build_scope_tree(
    items: Iterable, root: str = _c.DEFAULT_ROOT, tree: Optional[ScopeTree] = None
) -> ScopeTree:
    """Build (or extend ``tree`` with) a root scope named ``root`` from ``items``."""

    if tree is None:
        tree = ScopeTree()
    root_node = tree.add_root(root)
    root_node.body = _collect_scope(tree, root_node, items)
    return tree


__all__ = [
    "Alias",
    "ScopeNode",
    "ScopeTree",
    "build_scope_tree",
    "parse_path",
]
