"""
Plan Formatter

Renders plan trees as indented text, one operator per line:

    Project(T1.a)
      Join[NESTED_LOOP](T1.a = T2.b)
        Select(T1.a > 5)
          Scan(T1)
        Scan(T2)
"""

from typing import List

from constants import Attribute
from plan import (Distinct, GroupBy, Join, OrderBy, PlanNode, Project, Scan, Select, Sort,
                  algorithm_name, children)


INDENT = '  '


def format_plan(root: PlanNode) -> str:
    lines: List[str] = []
    _format_node(root, 0, lines)
    return '\n'.join(lines)


def format_plan_inline(root: PlanNode) -> str:
    """Single-line rendering for CSV output and log messages"""
    below = [format_plan_inline(child) for child in children(root)]
    if not below:
        return describe(root)
    return f"{describe(root)} <- ({', '.join(below)})"


def _format_node(node: PlanNode, depth: int, lines: List[str]) -> None:
    lines.append(INDENT * depth + describe(node))
    for child in children(node):
        _format_node(child, depth + 1, lines)


def describe(node: PlanNode) -> str:
    """One-line description of a single operator"""
    if isinstance(node, Scan):
        return f"Scan({node.table})"
    if isinstance(node, Select):
        return f"Select({node.condition})"
    if isinstance(node, Project):
        return f"Project({_columns(node.columns)})"
    if isinstance(node, Join):
        conditions = ' AND '.join(str(c) for c in node.conditions)
        return f"Join[{algorithm_name(node.algorithm)}]({conditions})"
    if isinstance(node, GroupBy):
        return f"GroupBy({_columns(node.columns)})"
    if isinstance(node, OrderBy):
        direction = 'ASC' if node.ascending else 'DESC'
        return f"OrderBy({_columns(node.columns)} {direction})"
    if isinstance(node, Distinct):
        return f"Distinct({_columns(node.columns) if node.columns else '*'})"
    if isinstance(node, Sort):
        return f"Sort({_columns(node.columns)})"
    return type(node).__name__


def _columns(columns: List[Attribute]) -> str:
    return ', '.join(str(c) for c in columns)
