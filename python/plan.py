"""
Plan tree nodes

A plan is a tree of the node dataclasses below. Every node owns its
resolved output schema, and each base node has exactly one parent.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Set, Union

from constants import Attribute, Condition, JoinAlgorithm, Schema


@dataclass
class Scan:
    """Sequential read of a base table"""
    table: str
    schema: Schema


@dataclass
class Select:
    """Filter on one condition, pipelined over its base"""
    base: 'PlanNode'
    condition: Condition
    schema: Schema


@dataclass
class Project:
    base: 'PlanNode'
    columns: List[Attribute]
    schema: Schema


@dataclass
class Join:
    """
    Join of two subtrees on all conditions relating them

    Attributes:
        algorithm: JoinAlgorithm member, or a raw code set by a search loop
        node_index: Position of this join in construction order
    """
    left: 'PlanNode'
    right: 'PlanNode'
    conditions: List[Condition]
    algorithm: int
    schema: Schema
    node_index: int = 0


@dataclass
class GroupBy:
    base: 'PlanNode'
    columns: List[Attribute]
    buffer_count: int
    schema: Schema


@dataclass
class OrderBy:
    base: 'PlanNode'
    columns: List[Attribute]
    ascending: bool
    buffer_count: int
    schema: Schema


@dataclass
class Distinct:
    """Duplicate elimination on the given columns (all columns if None)"""
    base: 'PlanNode'
    buffer_count: int
    schema: Schema
    columns: Optional[List[Attribute]] = None


@dataclass
class Sort:
    """External merge sort on the given columns"""
    base: 'PlanNode'
    columns: List[Attribute]
    buffer_count: int
    schema: Schema


PlanNode = Union[Scan, Select, Project, Join, GroupBy, OrderBy, Distinct, Sort]

# Nodes costed with the external merge sort formula
SORT_BASED = (GroupBy, OrderBy, Distinct, Sort)


def children(node: PlanNode) -> List[PlanNode]:
    if isinstance(node, Scan):
        return []
    if isinstance(node, Join):
        return [node.left, node.right]
    return [node.base]


def iter_nodes(root: PlanNode) -> Iterator[PlanNode]:
    """Pre-order traversal of a plan tree"""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children(node)))


def find_joins(root: PlanNode) -> List[Join]:
    """
    All Join nodes of a plan, in pre-order

    The search loop mutates `algorithm` on these nodes in place.
    """
    return [node for node in iter_nodes(root) if isinstance(node, Join)]


def plan_tables(root: PlanNode) -> Set[str]:
    """Base tables scanned below a node"""
    return {node.table for node in iter_nodes(root) if isinstance(node, Scan)}


def algorithm_name(code: int) -> str:
    try:
        return JoinAlgorithm(code).name
    except ValueError:
        return f"UNKNOWN({code})"
