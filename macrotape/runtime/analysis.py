"""Inspection and visualization utilities for macrotape scope trees."""
from __future__ import annotations

from pathlib import Path
import sys

from ..constants import SCOPE_COLORS
from .core import ScopeError
from .scopes import ScopeNode, ScopeTree, parse_path


def _node(tree: ScopeTree, scope) -> ScopeNode:
    if scope is None:
        return tree.root()
    if isinstance(scope, ScopeNode):
        return scope
    return tree.node(scope)


def iter_scopes(tree: ScopeTree, scope=None):
    """Yield a scope and all descendants in depth-first order."""

    if scope is None:
        for index in tree.roots.values():
            yield from iter_scopes(tree, index)
        return
    node = _node(tree, scope)
    yield node
    for child in node.children.values():
        yield from iter_scopes(tree, child)


def print_scopes(tree: ScopeTree, scope=None, indent=0):
    if scope is None:
        for index in tree.roots.values():
            print_scopes(tree, index, indent)
        return
    node = _node(tree, scope)
    pad = "  " * indent
    label = f":{node.name}" if node.is_macro else node.name
    size = len(node.body or ())
    print(f"{pad}{label}  ({size} items)")
    for name, alias in node.aliases.items():
        target = tree.alias_target(alias)
        print(f"{pad}  use {name} → {tree.path_of(target.index)}")
    for child in node.children.values():
        print_scopes(tree, child, indent + 1)


def scope_to_dict(tree: ScopeTree, scope=None):
    """Recursively convert a scope subtree to a serializable dict."""

    node = _node(tree, scope)
    return {
        "name": node.name,
        "path": tree.path_of(node.index),
        "kind": "macro" if node.is_macro else "root",
        "items": len(node.body or ()),
        "aliases": {
            name: tree.path_of(tree.alias_target(alias).index)
            for name, alias in node.aliases.items()
        },
        "children": [scope_to_dict(tree, child) for child in node.children.values()],
    }


def explain_path(tree: ScopeTree, path_text, origin=None):
    """Describe, step by step, how ``path_text`` resolves from ``origin``."""

    origin_node = _node(tree, origin)
    try:
        ref = parse_path(path_text)
    except ScopeError as exc:
        return {"found": False, "path": path_text, "target": None, "lines": [f"✗ {exc}"]}

    lines = [f"Resolving '{path_text}' from {tree.path_of(origin_node.index)}"]
    hops = []
    try:
        target = tree.resolve(origin_node, ref, trace=hops)
    except ScopeError as exc:
        target = None
        failure = exc
    for kind, name, index in hops:
        path = tree.path_of(index)
        if kind == "up":
            lines.append(f"  ^ up to {path}")
        elif kind == "root":
            lines.append(f"  / anchored at root {name}")
        elif kind == "alias":
            lines.append(f"  → {name}: imported alias of {path}")
        else:
            lines.append(f"  → {name}: macro {path}")

    if target is None:
        lines.append(f"  ✗ {failure}")
        return {"found": False, "path": path_text, "target": None, "lines": lines}

    target_path = tree.path_of(target.index)
    lines.append(f"  ✓ resolves to {target_path}")
    return {"found": True, "path": path_text, "target": target_path, "lines": lines}


def scope_graph(tree: ScopeTree):
    """Build a networkx DiGraph of scopes, nesting edges and import edges."""

    import networkx as nx

    graph = nx.DiGraph()
    for node in tree:
        kind = "macro" if node.is_macro else "root"
        graph.add_node(
            tree.path_of(node.index),
            label=node.name,
            kind=kind,
            color=SCOPE_COLORS[kind],
        )
    for node in tree:
        path = tree.path_of(node.index)
        for child in node.children.values():
            graph.add_edge(path, tree.path_of(child), kind="nest")
        for alias in node.aliases.values():
            target = tree.path_of(tree.alias_target(alias).index)
            graph.add_edge(path, target, kind="alias")
    return graph


def visualize_graph(tree: ScopeTree):  # pragma: no cover
    """Plot the scope tree with matplotlib; import edges are dashed."""

    import matplotlib.pyplot as plt
    import networkx as nx

    graph = scope_graph(tree)
    positions = nx.spring_layout(graph, seed=42)
    labels = {n: graph.nodes[n].get("label", n) for n in graph.nodes}
    colors = [graph.nodes[n].get("color", SCOPE_COLORS["macro"]) for n in graph.nodes]
    nest_edges = [(u, v) for u, v, d in graph.edges(data=True) if d["kind"] == "nest"]
    alias_edges = [(u, v) for u, v, d in graph.edges(data=True) if d["kind"] == "alias"]

    plt.figure()
    nx.draw_networkx_nodes(graph, positions, node_color=colors, edgecolors="black")
    nx.draw_networkx_labels(graph, positions, labels=labels, font_size=8)
    nx.draw_networkx_edges(graph, positions, edgelist=nest_edges)
    if alias_edges:
        nx.draw_networkx_edges(
            graph,
            positions,
            edgelist=alias_edges,
            style="dashed",
            edge_color=SCOPE_COLORS["alias"],
        )
    plt.title("macrotape scope tree")
    plt.axis("off")
    plt.tight_layout()
    plt.show()


def build_graphviz(tree: ScopeTree):
    """Return a pydot graph with one cluster per root."""

    import pydot

    graph = pydot.Dot(
        "macrotape_scopes",
        graph_type="digraph",
        rankdir="LR",
        fontname="Helvetica",
    )

    def node_id(index):
        return f"scope_{index}"

    for root_name, root_index in tree.roots.items():
        cluster = pydot.Cluster(
            f"cluster_{root_name}",
            label=root_name,
            color="#7f8c8d",
            fontname="Helvetica",
            fontsize="10",
            style="rounded",
        )
        for node in iter_scopes(tree, root_index):
            kind = "macro" if node.is_macro else "root"
            cluster.add_node(
                pydot.Node(
                    node_id(node.index),
                    label=node.name,
                    shape="box" if node.is_macro else "folder",
                    style="filled",
                    fillcolor=SCOPE_COLORS[kind],
                    fontname="Helvetica",
                )
            )
        graph.add_subgraph(cluster)

    for node in tree:
        for child in node.children.values():
            graph.add_edge(pydot.Edge(node_id(node.index), node_id(child)))
        for name, alias in node.aliases.items():
            target = tree.alias_target(alias)
            graph.add_edge(
                pydot.Edge(
                    node_id(node.index),
                    node_id(target.index),
                    label=f"use {name}",
                    style="dashed",
                    color="#7f8c8d",
                )
            )
    return graph


def export_graphviz(tree: ScopeTree, output_path):  # pragma: no cover
    """Export the scope tree as a Graphviz SVG."""

    graph = build_graphviz(tree)
    output_path = Path(output_path)
    if output_path.parent and not output_path.parent.exists():
        output_path.parent.mkdir(parents=True, exist_ok=True)
    graph.write_svg(str(output_path))
    print(f"  ✓ Graphviz scope tree exported → {output_path}", file=sys.stderr)


__all__ = [
    "build_graphviz",
    "explain_path",
    "export_graphviz",
    "iter_scopes",
    "print_scopes",
    "scope_graph",
    "scope_to_dict",
    "visualize_graph",
]
