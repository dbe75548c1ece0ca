"""
Plan Cost Estimator

Walks a plan tree bottom-up and estimates its total page I/O cost and the
number of tuples it produces. Estimation uses table statistics under the
uniformity and independence assumptions:

- Scan reads <table>.stat and seeds the distinct-value map
- Select scales cardinality by 1/d (=), 1 - 1/d (!=) or 1/2 (other)
- Join divides the cross product by max(d_left, d_right) per condition
- GroupBy, OrderBy, Distinct and Sort are charged an external merge sort

One distinct-value map lives for a whole pass. Select and Join overwrite
entries in place so ancestors visited later see the reduced counts.
"""

import logging
import math
from typing import Dict, Optional

from catalog import Catalog
from constants import MAX_COST, Attribute, Comparator, JoinAlgorithm, OptimizerConfig, PlanEstimate
from plan import SORT_BASED, Join, PlanNode, Project, Scan, Select, algorithm_name

logger = logging.getLogger(__name__)

# Smallest buffer allotment for block-nested-loop, sort-merge and external sort
MIN_SORT_BUFFERS = 3


class PlanCostEstimator:
    """
    Estimates cost and cardinality of plan trees

    Not thread-safe: the cost accumulator, feasibility flag and
    distinct-value map belong to the pass in progress.
    """

    def __init__(self, catalog: Catalog, config: Optional[OptimizerConfig] = None):
        self.catalog = catalog
        self.config = config or OptimizerConfig()

        self.cost = 0
        self.is_feasible = True
        self.num_tuples = 0
        self.distinct_values: Dict[Attribute, int] = {}

    def estimate(self, root: PlanNode) -> PlanEstimate:
        """
        Estimate a plan

        Args:
            root: Root of the plan tree

        Returns:
            PlanEstimate with MAX_COST when the plan is not feasible

        Raises:
            CatalogError: If statistics of a scanned table cannot be read
        """
        self.cost = 0
        self.is_feasible = True
        self.distinct_values = {}
        self.num_tuples = self._calculate_cost(root)

        if not self.is_feasible:
            logger.info("Plan is not feasible")
            return PlanEstimate(cost=MAX_COST, cardinality=self.num_tuples, feasible=False)
        return PlanEstimate(cost=self.cost, cardinality=self.num_tuples)

    @property
    def last_cardinality(self) -> int:
        """Tuples produced by the root of the last estimated plan"""
        return self.num_tuples

    def _calculate_cost(self, node: PlanNode) -> int:
        if isinstance(node, Join):
            cardinality = self._join_statistics(node)
        elif isinstance(node, Select):
            cardinality = self._select_statistics(node)
        elif isinstance(node, Project):
            cardinality = self._calculate_cost(node.base)
        elif isinstance(node, Scan):
            cardinality = self._scan_statistics(node)
        elif isinstance(node, SORT_BASED):
            cardinality = self._sort_statistics(node)
        else:
            logger.warning("Operator is not supported: %s", type(node).__name__)
            self.is_feasible = False
            return 0

        logger.debug("%s: cardinality=%d, cost so far=%d",
                     type(node).__name__, cardinality, self.cost)
        return cardinality

    def _scan_statistics(self, node: Scan) -> int:
        schema = node.schema
        stats = self.catalog.load_statistics(node.table, schema.num_cols)

        for attr, distinct in zip(schema.attributes, stats.distinct_counts):
            self.distinct_values[attr] = distinct

        self.cost += ceil_div(stats.tuple_count, self._capacity(schema.tuple_size))
        return stats.tuple_count

    def _select_statistics(self, node: Select) -> int:
        """
        Selection is pipelined, so no I/O is charged
        """
        in_tuples = self._calculate_cost(node.base)
        if not self.is_feasible:
            return 0

        condition = node.condition
        schema = node.schema
        attr = schema.resolve(condition.lhs)
        num_distinct = self.distinct_values[attr]

        if num_distinct == 0:
            out_tuples = 0
        elif condition.comparator == Comparator.EQUAL:
            out_tuples = math.ceil(in_tuples / num_distinct)
        elif condition.comparator == Comparator.NOT_EQUAL:
            out_tuples = math.ceil(in_tuples - in_tuples / num_distinct)
        else:
            out_tuples = math.ceil(0.5 * in_tuples)

        # Every column's distinct count becomes the output cardinality,
        # not a proportional rescale of its previous value.
        for column in schema.attributes:
            self.distinct_values[column] = out_tuples

        return out_tuples

    def _join_statistics(self, node: Join) -> int:
        left_tuples = self._calculate_cost(node.left)
        right_tuples = self._calculate_cost(node.right)
        if not self.is_feasible:
            return 0

        left_schema = node.left.schema
        right_schema = node.right.schema
        left_pages = ceil_div(left_tuples, self._capacity(left_schema.tuple_size))
        right_pages = ceil_div(right_tuples, self._capacity(right_schema.tuple_size))

        tuples = float(left_tuples) * float(right_tuples)
        for condition in node.conditions:
            left_attr = left_schema.resolve(condition.lhs)
            right_attr = right_schema.resolve(condition.rhs)

            left_distinct = self.distinct_values[left_attr]
            right_distinct = self.distinct_values[right_attr]
            largest = max(left_distinct, right_distinct)
            tuples = tuples / largest if largest else 0.0

            smallest = min(left_distinct, right_distinct)
            self.distinct_values[left_attr] = smallest
            self.distinct_values[right_attr] = smallest
        out_tuples = math.ceil(tuples)

        num_buffers = self.config.buffers_per_join
        algorithm = node.algorithm

        if algorithm == JoinAlgorithm.NESTED_LOOP:
            join_cost = left_pages * right_pages
        elif algorithm == JoinAlgorithm.BLOCK_NESTED:
            if not self._enough_buffers(num_buffers, 'block-nested-loop join'):
                return 0
            join_cost = left_pages + ceil_div(left_pages, num_buffers - 2) * right_pages
        elif algorithm == JoinAlgorithm.SORT_MERGE:
            if not self._enough_buffers(num_buffers, 'sort-merge join'):
                return 0
            sort_cost = (sort_merge_sort_cost(left_pages, num_buffers)
                         + sort_merge_sort_cost(right_pages, num_buffers))
            merge_cost = left_pages + right_pages
            logger.debug("Sort-merge join: sort=%d merge=%d not charged", sort_cost, merge_cost)
            join_cost = 0
        else:
            logger.warning("Join algorithm is not supported: %s", algorithm_name(algorithm))
            self.is_feasible = False
            return 0

        self.cost += join_cost
        return out_tuples

    def _sort_statistics(self, node: PlanNode) -> int:
        """
        GroupBy, OrderBy, Distinct and Sort keep cardinality unchanged
        """
        in_tuples = self._calculate_cost(node.base)
        if not self.is_feasible:
            return 0

        num_buffers = self.config.num_buffers
        if not self._enough_buffers(num_buffers, f"{type(node).__name__} sort"):
            return in_tuples

        pages = ceil_div(in_tuples, self._capacity(node.schema.tuple_size))
        self.cost += external_sort_cost(pages, num_buffers)
        return in_tuples

    def _capacity(self, tuple_size: int) -> int:
        """Tuples per page"""
        return max(1, self.config.page_size // tuple_size)

    def _enough_buffers(self, num_buffers: int, operation: str) -> bool:
        if num_buffers < MIN_SORT_BUFFERS:
            logger.warning("Insufficient buffers for %s: %d < %d",
                           operation, num_buffers, MIN_SORT_BUFFERS)
            self.is_feasible = False
            return False
        return True


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def external_sort_cost(pages: int, num_buffers: int) -> int:
    """
    Cost of an external merge sort: 2 * pages * (1 + ceil(log_{B-1}(runs)))

    Args:
        pages: Input pages
        num_buffers: Buffer pages available (at least 3)

    Returns:
        Page I/Os for run generation plus all merge passes
    """
    runs = ceil_div(pages, num_buffers)
    # ceil(log_{B-1}(runs)) without floating point rounding
    merge_passes = 0
    while runs > 1:
        runs = ceil_div(runs, num_buffers - 1)
        merge_passes += 1
    return 2 * pages * (1 + merge_passes)


def sort_merge_sort_cost(pages: int, num_buffers: int) -> int:
    """Per-side sort cost of a sort-merge join: 2 * pages * (1 + ceil(ln(runs)))"""
    runs = ceil_div(pages, num_buffers)
    passes = math.ceil(math.log(runs)) if runs > 1 else 0
    return 2 * pages * (1 + passes)
