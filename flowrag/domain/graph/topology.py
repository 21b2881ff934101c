from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from flowrag.domain.graph.types import Edge

_WHITE, _GREY, _BLACK = 0, 1, 2


def find_cycle(node_ids: Iterable[str], edges: Iterable[Edge]) -> Optional[List[str]]:
    """
    Returns one directed cycle as a node path (first node repeated at the end),
    or None for an acyclic graph.
    """
    ordered = list(node_ids)
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in ordered}
    for edge in edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)

    color = {node_id: _WHITE for node_id in ordered}
    parent: Dict[str, Optional[str]] = {}

    for start in ordered:
        if color[start] != _WHITE:
            continue
        color[start] = _GREY
        parent[start] = None
        stack = [(start, iter(adjacency[start]))]
        while stack:
            current, children = stack[-1]
            child = next(children, None)
            if child is None:
                color[current] = _BLACK
                stack.pop()
                continue
            if color[child] == _GREY:
                cycle = [current]
                while cycle[-1] != child:
                    cycle.append(parent[cycle[-1]])  # type: ignore[arg-type]
                cycle.reverse()
                return cycle + [child]
            if color[child] == _WHITE:
                color[child] = _GREY
                parent[child] = current
                stack.append((child, iter(adjacency[child])))
    return None
