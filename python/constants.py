"""
Data structures for random plan construction and cost estimation

This module defines the dataclasses, enums and error types shared by the
catalog, the plan builder and the cost estimator.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional, Set, Union


# Sentinel cost reported for plans that cannot be executed
MAX_COST = 2 ** 63 - 1


class CatalogError(Exception):
    """
    Schema descriptor or statistics file is missing or malformed

    Attributes:
        path: File that could not be read or parsed
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class Attribute:
    """
    Column of a relation

    Identity is (table, name); type and size are descriptive only.

    Example: Attribute('T1', 'a') == Attribute('T1', 'a', 'STRING', 20)
    """
    table: Optional[str]
    name: str
    type: str = field(default='INTEGER', compare=False)
    size: int = field(default=4, compare=False)

    def __str__(self) -> str:
        if self.table:
            return f"{self.table}.{self.name}"
        return self.name


@dataclass
class Schema:
    """
    Ordered attribute list of a relation plus its tuple size in bytes

    Attributes:
        attributes: Columns in storage order
        tuple_size: Bytes per tuple
    """
    attributes: List[Attribute]
    tuple_size: int

    @property
    def num_cols(self) -> int:
        return len(self.attributes)

    def attribute(self, index: int) -> Attribute:
        return self.attributes[index]

    def index_of(self, attr: Attribute) -> int:
        """
        Position of an attribute in this schema

        Unqualified attributes (no table) match on column name alone.

        Raises:
            ValueError: If the attribute is not part of the schema
        """
        for i, candidate in enumerate(self.attributes):
            if attr.table is None:
                if candidate.name == attr.name:
                    return i
            elif candidate == attr:
                return i
        raise ValueError(f"Attribute {attr} not found in schema")

    def contains(self, attr: Attribute) -> bool:
        try:
            self.index_of(attr)
        except ValueError:
            return False
        return True

    def resolve(self, attr: Attribute) -> Attribute:
        """Canonical schema attribute for a (possibly unqualified) reference"""
        return self.attributes[self.index_of(attr)]

    def join_with(self, other: 'Schema') -> 'Schema':
        return Schema(
            attributes=self.attributes + other.attributes,
            tuple_size=self.tuple_size + other.tuple_size
        )

    def sub_schema(self, columns: List[Attribute]) -> 'Schema':
        """Restrict to the given columns, keeping their order"""
        kept = [self.resolve(col) for col in columns]
        return Schema(attributes=kept, tuple_size=sum(a.size for a in kept))


class Comparator(Enum):
    EQUAL = '='
    NOT_EQUAL = '!='
    LESS = '<'
    LESS_EQUAL = '<='
    GREATER = '>'
    GREATER_EQUAL = '>='

    def mirrored(self) -> 'Comparator':
        """Comparator that holds after swapping both operands"""
        return _MIRRORED.get(self, self)


_MIRRORED = {
    Comparator.LESS: Comparator.GREATER,
    Comparator.GREATER: Comparator.LESS,
    Comparator.LESS_EQUAL: Comparator.GREATER_EQUAL,
    Comparator.GREATER_EQUAL: Comparator.LESS_EQUAL,
}


class ConditionKind(Enum):
    SELECT = 'select'
    JOIN = 'join'


Literal = Union[int, float, str]


@dataclass(frozen=True)
class Condition:
    """
    Predicate over one attribute and either another attribute or a literal

    Example: "T1.a = T2.b" => Condition(T1.a, T2.b, EQUAL, JOIN)
             "T1.c > 10"   => Condition(T1.c, 10, GREATER, SELECT)
    """
    lhs: Attribute
    rhs: Union[Attribute, Literal]
    comparator: Comparator = Comparator.EQUAL
    kind: ConditionKind = ConditionKind.SELECT

    @property
    def is_join(self) -> bool:
        return self.kind == ConditionKind.JOIN

    def flipped(self) -> 'Condition':
        """Same join condition with sides swapped"""
        if not isinstance(self.rhs, Attribute):
            raise ValueError(f"Cannot flip selection condition {self}")
        return Condition(
            lhs=self.rhs,
            rhs=self.lhs,
            comparator=self.comparator.mirrored(),
            kind=self.kind
        )

    def tables(self) -> Set[str]:
        tables = set()
        if self.lhs.table:
            tables.add(self.lhs.table)
        if isinstance(self.rhs, Attribute) and self.rhs.table:
            tables.add(self.rhs.table)
        return tables

    def __str__(self) -> str:
        rhs = self.rhs if not isinstance(self.rhs, str) else f"'{self.rhs}'"
        return f"{self.lhs} {self.comparator.value} {rhs}"


class JoinAlgorithm(IntEnum):
    NESTED_LOOP = 0
    BLOCK_NESTED = 1
    SORT_MERGE = 2

    @classmethod
    def supported_count(cls) -> int:
        """Number of algorithms the builder may choose from"""
        return len(cls)


@dataclass
class OptimizerConfig:
    """
    Storage and buffer-pool parameters

    Attributes:
        page_size: Bytes per page
        num_buffers: Total pages in the buffer pool
        buffers_per_join: Pages granted to each join operator
    """
    page_size: int = 4096
    num_buffers: int = 100
    buffers_per_join: int = 10

    def __post_init__(self):
        for name in ('page_size', 'num_buffers', 'buffers_per_join'):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class TableStatistics:
    """
    Contents of a <table>.stat file

    Attributes:
        tuple_count: Number of tuples in the table
        distinct_counts: Distinct values per column, in schema order
    """
    tuple_count: int
    distinct_counts: List[int]


@dataclass
class SQLQuery:
    """
    Parsed query clauses consumed by the plan builder

    Attributes:
        from_tables: Tables in the FROM list
        selections: Single-table conditions
        join_conditions: Two-table conditions
        group_by: Grouping columns
        order_by: Ordering columns
        projection: Projected columns (empty for SELECT *)
        distinct: True for SELECT DISTINCT
        ascending: Sort direction of ORDER BY
    """
    from_tables: List[str]
    selections: List[Condition] = field(default_factory=list)
    join_conditions: List[Condition] = field(default_factory=list)
    group_by: List[Attribute] = field(default_factory=list)
    order_by: List[Attribute] = field(default_factory=list)
    projection: List[Attribute] = field(default_factory=list)
    distinct: bool = False
    ascending: bool = True


@dataclass
class PlanEstimate:
    """
    Outcome of one estimation pass

    Attributes:
        cost: Total page I/Os, or MAX_COST if infeasible
        cardinality: Estimated tuples produced by the root
        feasible: False if the plan cannot be executed as configured
    """
    cost: int
    cardinality: int
    feasible: bool = True
