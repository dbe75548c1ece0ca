"""
Join Graph grouped by table pair

This module implements the join graph used during plan construction:
- Join conditions grouped by the unordered pair of tables they relate
- Canonical orientation (left side names the smaller table)
- Union-Find connected components
"""

from typing import Dict, List, Set, Tuple

from constants import Condition


EDGE_SEPARATOR = '|||'


def edge_key(t1: str, t2: str) -> str:
    """Canonical key for an unordered table pair: "t1|||t2" """
    return EDGE_SEPARATOR.join(sorted([t1, t2]))


def split_edge(edge: str) -> Tuple[str, str]:
    left, right = edge.split(EDGE_SEPARATOR, 1)
    return left, right


class JoinGraph:
    """
    Graph of tables connected by join conditions

    Edges keep the order in which their table pair was first seen.
    """

    def __init__(self):
        self.join_conditions: Dict[str, List[Condition]] = {}  # edge -> conditions
        self.adjacency: Dict[str, Set[str]] = {}  # table -> neighbouring tables

    def add_join(self, condition: Condition) -> str:
        """
        Add a join condition to the graph

        The condition is flipped when its left side names the
        lexicographically larger table.

        Args:
            condition: Join condition between two attributes

        Returns:
            Edge key of the condition's table pair
        """
        if not condition.is_join:
            raise ValueError(f"Not a join condition: {condition}")

        t1 = condition.lhs.table
        t2 = condition.rhs.table
        if not t1 or not t2 or t1 == t2:
            raise ValueError(f"Join condition must relate two tables: {condition}")

        # Normalize: always store in sorted table order
        if t1 > t2:
            condition = condition.flipped()
            t1, t2 = t2, t1

        edge = edge_key(t1, t2)
        if edge not in self.join_conditions:
            self.join_conditions[edge] = []
        self.join_conditions[edge].append(condition)

        self.adjacency.setdefault(t1, set()).add(t2)
        self.adjacency.setdefault(t2, set()).add(t1)
        return edge

    @property
    def edges(self) -> List[str]:
        return list(self.join_conditions.keys())

    @property
    def num_edges(self) -> int:
        return len(self.join_conditions)

    def conditions_for(self, edge: str) -> List[Condition]:
        return self.join_conditions.get(edge, [])

    def connected_components(self, tables: List[str]) -> List[Set[str]]:
        """
        Partition tables into join-connected components using Union-Find

        Args:
            tables: All tables of the query

        Returns:
            Components in order of their first table in `tables`
        """
        parent: Dict[str, str] = {t: t for t in tables}

        def find(x: str) -> str:
            if parent.setdefault(x, x) != x:
                parent[x] = find(parent[x])  # Path compression
            return parent[x]

        for edge in self.join_conditions:
            left, right = split_edge(edge)
            root_l, root_r = find(left), find(right)
            if root_l != root_r:
                parent[root_r] = root_l

        groups: Dict[str, Set[str]] = {}
        for table in tables:
            groups.setdefault(find(table), set()).add(table)
        return list(groups.values())
