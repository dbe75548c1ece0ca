"""
Random Initial Plan Builder

Turns the clauses of a parsed query into one plan tree, choosing the
physical algorithm of every join at random. The pipeline is fixed:

    Scan -> Select -> Join -> GroupBy -> OrderBy -> Project -> Distinct

Each stage is skipped when its clause is empty.
"""

import logging
import random
from typing import Dict, List, Optional, Sequence, Tuple

from catalog import Catalog
from constants import Attribute, Condition, JoinAlgorithm, OptimizerConfig, SQLQuery
from join_graph import JoinGraph, split_edge
from plan import Distinct, GroupBy, Join, OrderBy, PlanNode, Project, Scan, Select, plan_tables
from predicates import PredicateClassifier

logger = logging.getLogger(__name__)


class RandomInitialPlanBuilder:
    """
    Builds one random, syntactically valid plan for a query

    The builder keeps a frontier: for every table, the top-most operator
    built so far over it. Tables joined together share one frontier entry
    through a Union-Find parent map keyed by table name.
    """

    def __init__(
        self,
        catalog: Catalog,
        config: Optional[OptimizerConfig] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize builder

        Args:
            catalog: Source of table schemas
            config: Buffer configuration (defaults to OptimizerConfig())
            rng: Random source for join algorithm choice
            seed: Seed for a private random source when rng is not given
        """
        self.catalog = catalog
        self.config = config or OptimizerConfig()
        self.rng = rng if rng is not None else random.Random(seed)

        self.root: Optional[PlanNode] = None
        self.num_joins = 0  # Distinct table-pair joins built
        self._parent: Dict[str, str] = {}  # table -> representative table
        self._subtree: Dict[str, PlanNode] = {}  # representative -> frontier operator

    def build_for_query(self, query: SQLQuery) -> PlanNode:
        return self.build(
            query.from_tables,
            selections=query.selections,
            join_conditions=query.join_conditions,
            group_by=query.group_by,
            order_by=query.order_by,
            projection=query.projection,
            distinct=query.distinct,
            ascending=query.ascending
        )

    def build(
        self,
        from_tables: Sequence[str],
        selections: Sequence[Condition] = (),
        join_conditions: Sequence[Condition] = (),
        group_by: Sequence[Attribute] = (),
        order_by: Sequence[Attribute] = (),
        projection: Sequence[Attribute] = (),
        distinct: bool = False,
        ascending: bool = True
    ) -> PlanNode:
        """
        Prepare the initial plan for a query

        Args:
            from_tables: Tables in the FROM list (at least one)
            selections: Single-table conditions, applied in list order
            join_conditions: Two-table conditions
            group_by: Grouping columns
            order_by: Ordering columns
            projection: Projected columns (empty keeps all columns)
            distinct: Whether duplicates are eliminated
            ascending: Sort direction of ORDER BY

        Returns:
            Root of the plan tree

        Raises:
            ValueError: If from_tables is empty or a condition names an unknown table
            CatalogError: If a schema descriptor cannot be read
        """
        if not from_tables:
            raise ValueError("Cannot build a plan without tables")

        self.root = None
        self.num_joins = 0
        self._parent = {}
        self._subtree = {}

        self._create_scans(from_tables)
        selections, join_conditions = self._classify(selections, join_conditions)
        self._create_selects(selections)

        if join_conditions:
            graph = self._create_joins(join_conditions)
            self._check_connected(from_tables, graph)

        if group_by:
            self._create_group_by(list(group_by))

        if order_by:
            self._create_order_by(list(order_by), ascending)

        if projection:
            self._create_project(list(projection))

        if distinct:
            self._create_distinct(list(projection))

        return self.root

    # Frontier bookkeeping

    def _find(self, table: str) -> str:
        if table not in self._parent:
            raise ValueError(f"Table {table} is not in the FROM list")
        if self._parent[table] != table:
            self._parent[table] = self._find(self._parent[table])  # Path compression
        return self._parent[table]

    def _frontier(self, table: str) -> PlanNode:
        return self._subtree[self._find(table)]

    def _replace(self, table: str, node: PlanNode) -> None:
        """Point every table sharing `table`'s frontier at a new operator"""
        self._subtree[self._find(table)] = node

    def _merge(self, left_table: str, right_table: str, node: PlanNode) -> None:
        root_l, root_r = self._find(left_table), self._find(right_table)
        self._parent[root_r] = root_l
        del self._subtree[root_r]
        self._subtree[root_l] = node

    def _table_of(self, attr: Attribute) -> str:
        """
        Table an attribute belongs to, looked up by column name if unqualified

        Raises:
            ValueError: If no table, or more than one, has the column
        """
        if attr.table:
            return attr.table
        matches = [table for table in self._parent if self._frontier(table).schema.contains(attr)]
        if not matches:
            raise ValueError(f"Attribute {attr} does not belong to any table in the FROM list")
        if len(matches) > 1:
            raise ValueError(f"Attribute {attr} is ambiguous: found in {', '.join(matches)}")
        return matches[0]

    def _qualify(self, attr: Attribute) -> Attribute:
        if attr.table:
            return attr
        return self._frontier(self._table_of(attr)).schema.resolve(attr)

    def _classify(
        self,
        selections: Sequence[Condition],
        join_conditions: Sequence[Condition]
    ) -> Tuple[List[Condition], List[Condition]]:
        """
        Qualify every column by its table, then split selections from joins

        A column-vs-column comparison is only known to span two tables once
        its unqualified sides are matched against the scanned schemas.
        """
        classifier = PredicateClassifier()
        for condition in list(join_conditions) + list(selections):
            lhs = self._qualify(condition.lhs)
            rhs = self._qualify(condition.rhs) if isinstance(condition.rhs, Attribute) else condition.rhs
            if lhs != condition.lhs or rhs != condition.rhs:
                condition = Condition(lhs, rhs, condition.comparator, condition.kind)
            classifier.add_predicate(condition)
        classifier.classify_predicates()
        return classifier.selections, classifier.joins

    # Stages

    def _create_scans(self, from_tables: Sequence[str]) -> None:
        for table in from_tables:
            schema = self.catalog.load_schema(table)
            scan = Scan(table=table, schema=schema)
            self._parent[table] = table
            self._subtree[table] = scan
            self.root = scan
        logger.debug("Created %d scans", len(from_tables))

    def _create_selects(self, selections: Sequence[Condition]) -> None:
        for condition in selections:
            table = self._table_of(condition.lhs)
            base = self._frontier(table)
            select = Select(base=base, condition=condition, schema=base.schema)
            self._replace(table, select)
            self.root = select

    def _create_joins(self, join_conditions: Sequence[Condition]) -> JoinGraph:
        """
        Create one join per distinct table pair

        A pair whose tables already share a subtree becomes a chain of
        selections over that subtree.
        """
        graph = JoinGraph()
        for condition in join_conditions:
            graph.add_join(condition)

        last_table = None
        for edge in graph.edges:
            left_table, right_table = split_edge(edge)
            conditions = graph.conditions_for(edge)

            if self._find(left_table) == self._find(right_table):
                subtree = self._frontier(left_table)
                for condition in conditions:
                    subtree = Select(base=subtree, condition=condition, schema=subtree.schema)
                self._replace(left_table, subtree)
                logger.debug("Tables %s and %s already joined; applied %d conditions as selections",
                             left_table, right_table, len(conditions))
            else:
                left = self._frontier(left_table)
                right = self._frontier(right_table)
                join = Join(
                    left=left,
                    right=right,
                    conditions=list(conditions),
                    algorithm=self._random_algorithm(),
                    schema=left.schema.join_with(right.schema),
                    node_index=self.num_joins
                )
                self._merge(left_table, right_table, join)
                self.num_joins += 1
                logger.debug("Join %d: %s with %s using %s",
                             join.node_index, left_table, right_table, join.algorithm.name)
            last_table = left_table

        self.root = self._frontier(last_table)
        return graph

    def _random_algorithm(self) -> JoinAlgorithm:
        return JoinAlgorithm(self.rng.randint(0, JoinAlgorithm.supported_count() - 1))

    def _check_connected(self, from_tables: Sequence[str], graph: JoinGraph) -> None:
        missing = set(from_tables) - plan_tables(self.root)
        if missing:
            components = graph.connected_components(list(from_tables))
            logger.warning("Plan is disconnected (%d join groups); tables not under the root: %s",
                           len(components), ', '.join(sorted(missing)))

    def _create_group_by(self, columns: List[Attribute]) -> None:
        self.root = GroupBy(
            base=self.root,
            columns=columns,
            buffer_count=self.config.num_buffers,
            schema=self.root.schema
        )

    def _create_order_by(self, columns: List[Attribute], ascending: bool) -> None:
        self.root = OrderBy(
            base=self.root,
            columns=columns,
            ascending=ascending,
            buffer_count=self.config.num_buffers,
            schema=self.root.schema
        )

    def _create_project(self, columns: List[Attribute]) -> None:
        base = self.root
        self.root = Project(base=base, columns=columns, schema=base.schema.sub_schema(columns))

    def _create_distinct(self, projection: List[Attribute]) -> None:
        self.root = Distinct(
            base=self.root,
            buffer_count=self.config.num_buffers,
            schema=self.root.schema,
            columns=projection or None
        )
