"""
SQL Parser using SQLglot

This module turns a SELECT statement into the SQLQuery clauses consumed by
the plan builder: FROM tables, selection and join conditions, GROUP BY,
ORDER BY, projection list and DISTINCT.

Supported WHERE/ON predicates are AND chains of comparisons
(=, !=, <>, <, <=, >, >=) between a column and a literal or two columns.
"""

from typing import Dict, List, Tuple, Union

from sqlglot import exp, parse_one

from constants import Attribute, Comparator, Condition, SQLQuery
from predicates import PredicateClassifier


_COMPARATORS = {
    exp.EQ: Comparator.EQUAL,
    exp.NEQ: Comparator.NOT_EQUAL,
    exp.LT: Comparator.LESS,
    exp.LTE: Comparator.LESS_EQUAL,
    exp.GT: Comparator.GREATER,
    exp.GTE: Comparator.GREATER_EQUAL,
}


def parse_sql(sql: str, dialect: str = 'postgres') -> SQLQuery:
    """
    Parse SQL query and extract the clauses needed for plan construction

    Args:
        sql: SQL query string
        dialect: SQL dialect for SQLglot parsing

    Returns:
        SQLQuery with tables, conditions and clause column lists

    Raises:
        ValueError: If query cannot be parsed, is not a SELECT or has no tables
    """
    try:
        ast = parse_one(sql, dialect=dialect)
    except Exception as e:
        raise ValueError(f"Failed to parse SQL: {e}") from e

    if not isinstance(ast, exp.Select):
        raise ValueError(f"Only SELECT statements are supported, got {type(ast).__name__}")

    tables, aliases = _extract_tables(ast)
    if not tables:
        raise ValueError("No tables found in query")

    resolver = _ColumnResolver(tables, aliases)

    classifier = PredicateClassifier()
    for predicate in _extract_predicates(ast):
        classifier.add_predicate(_to_condition(predicate, resolver))
    classifier.classify_predicates()

    order_by, ascending = _extract_order_by(ast, resolver)

    return SQLQuery(
        from_tables=tables,
        selections=classifier.selections,
        join_conditions=classifier.joins,
        group_by=_extract_group_by(ast, resolver),
        order_by=order_by,
        projection=_extract_projection(ast, resolver),
        distinct=bool(ast.args.get('distinct')),
        ascending=ascending
    )


def _extract_tables(ast: exp.Select) -> Tuple[List[str], Dict[str, str]]:
    """
    Extract tables and aliases from AST

    Args:
        ast: SQLglot AST

    Returns:
        Tuple of (table_list, alias_map)
        - table_list: Base table names in FROM/JOIN order
        - alias_map: Dict mapping alias (or name) to base table name
    """
    tables = []
    aliases = {}

    for table_node in ast.find_all(exp.Table):
        base_name = table_node.name
        alias = table_node.alias or base_name

        if base_name in tables:
            raise ValueError(f"Table {base_name} appears more than once; self-joins are not supported")
        tables.append(base_name)
        aliases[alias] = base_name
        aliases[base_name] = base_name

    return tables, aliases


class _ColumnResolver:
    """Maps column references to attributes qualified by base table name"""

    def __init__(self, tables: List[str], aliases: Dict[str, str]):
        self.tables = tables
        self.aliases = aliases

    def attribute(self, column: exp.Column) -> Attribute:
        qualifier = column.table
        if qualifier:
            if qualifier not in self.aliases:
                raise ValueError(f"Unknown table {qualifier} in column {column.sql()}")
            return Attribute(table=self.aliases[qualifier], name=column.name)
        if len(self.tables) == 1:
            return Attribute(table=self.tables[0], name=column.name)
        return Attribute(table=None, name=column.name)

    def columns(self, expressions: List[exp.Expression]) -> List[Attribute]:
        attributes = []
        for expression in expressions:
            if isinstance(expression, exp.Alias):
                expression = expression.this
            if not isinstance(expression, exp.Column):
                raise ValueError(f"Only plain columns are supported, got {expression.sql()}")
            attributes.append(self.attribute(expression))
        return attributes


def _extract_predicates(ast: exp.Select) -> List[exp.Expression]:
    """
    Collect the individual conditions of all JOIN ... ON and WHERE clauses

    Handles both:
    - Modern syntax: JOIN ... ON t1.x = t2.y
    - Legacy syntax: FROM t1, t2 WHERE t1.x = t2.y
    """
    predicates = []

    for join_node in ast.args.get('joins') or []:
        on = join_node.args.get('on')
        if on is not None:
            predicates.extend(_split_conditions(on))

    where_node = ast.args.get('where')
    if where_node is not None:
        predicates.extend(_split_conditions(where_node.this))

    return predicates


def _split_conditions(expr: exp.Expression) -> List[exp.Expression]:
    """
    Split an expression into individual conditions

    Recursively splits AND chains and strips parentheses
    """
    if isinstance(expr, exp.Paren):
        return _split_conditions(expr.this)
    if isinstance(expr, exp.And):
        return _split_conditions(expr.left) + _split_conditions(expr.right)
    return [expr]


def _to_condition(predicate: exp.Expression, resolver: _ColumnResolver) -> Condition:
    """
    Convert a comparison into a Condition with a column on the left

    Args:
        predicate: SQLglot comparison expression
        resolver: Column resolver for the query's tables

    Returns:
        Condition (kind is assigned later by the classifier)
    """
    comparator = _COMPARATORS.get(type(predicate))
    if comparator is None:
        raise ValueError(f"Unsupported predicate: {predicate.sql()}")

    left, right = predicate.left, predicate.right
    if not isinstance(left, exp.Column) and isinstance(right, exp.Column):
        left, right = right, left
        comparator = comparator.mirrored()

    if not isinstance(left, exp.Column):
        raise ValueError(f"Predicate must reference a column: {predicate.sql()}")

    lhs = resolver.attribute(left)
    if isinstance(right, exp.Column):
        rhs = resolver.attribute(right)
    else:
        rhs = _literal_value(right)

    return Condition(lhs=lhs, rhs=rhs, comparator=comparator)


def _literal_value(node: exp.Expression) -> Union[int, float, str]:
    """
    Python value of a literal

    Strings stay strings, numbers become int or float, negation is applied.
    """
    if isinstance(node, exp.Neg):
        value = _literal_value(node.this)
        if isinstance(value, str):
            raise ValueError(f"Cannot negate string literal: {node.sql()}")
        return -value

    if not isinstance(node, exp.Literal):
        raise ValueError(f"Unsupported comparison operand: {node.sql()}")

    if node.is_string:
        return node.this
    try:
        return int(node.this)
    except ValueError:
        return float(node.this)


def _extract_group_by(ast: exp.Select, resolver: _ColumnResolver) -> List[Attribute]:
    group = ast.args.get('group')
    if group is None:
        return []
    return resolver.columns(group.expressions)


def _extract_order_by(ast: exp.Select, resolver: _ColumnResolver) -> Tuple[List[Attribute], bool]:
    """
    Ordering columns and direction

    A single direction applies to the whole ORDER BY; it is descending
    only if every ordering term is descending.
    """
    order = ast.args.get('order')
    if order is None:
        return [], True

    columns = resolver.columns([ordered.this for ordered in order.expressions])
    descending = all(ordered.args.get('desc') for ordered in order.expressions)
    return columns, not descending


def _extract_projection(ast: exp.Select, resolver: _ColumnResolver) -> List[Attribute]:
    """
    Projected columns; SELECT * yields an empty list
    """
    expressions = ast.expressions
    if any(isinstance(e, exp.Star) for e in expressions):
        return []
    if any(isinstance(e, exp.Column) and isinstance(e.this, exp.Star) for e in expressions):
        return []
    return resolver.columns(expressions)


def describe_query(query: SQLQuery) -> str:
    """Short summary of a parsed query for verbose output"""
    return (f"tables={', '.join(query.from_tables)} "
            f"selections={len(query.selections)} joins={len(query.join_conditions)}")
