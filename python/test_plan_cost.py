"""
Test PlanCostEstimator implementation

Tests every operator's cost and cardinality formula, the shared
distinct-value map, and infeasibility handling
"""

import tempfile
from dataclasses import dataclass

from catalog import Catalog
from constants import (
    MAX_COST,
    Attribute,
    CatalogError,
    Comparator,
    Condition,
    ConditionKind,
    JoinAlgorithm,
    OptimizerConfig,
    Schema,
)
from plan import Distinct, GroupBy, Join, OrderBy, Project, Scan, Select, Sort
from plan_cost import PlanCostEstimator, ceil_div, external_sort_cost, sort_merge_sort_cost


def _setup(tmp, tables, **config):
    """
    Write tables and return (estimator, scans)

    Args:
        tables: table -> (tuple_count, [(column, distinct, size), ...])
    """
    catalog = Catalog(tmp)
    scans = {}
    for table, (tuple_count, columns) in tables.items():
        catalog.write_table(
            table,
            [{'name': name, 'size': size} for name, _, size in columns],
            tuple_count,
            [distinct for _, distinct, _ in columns]
        )
        scans[table] = Scan(table, catalog.load_schema(table))
    return PlanCostEstimator(catalog, OptimizerConfig(**config)), scans


def _select(base, column, comparator, value=1):
    return Select(base, Condition(Attribute(None, column), value, comparator), base.schema)


def _join(left, right, algorithm, *pairs):
    conditions = [
        Condition(Attribute(lt, lc), Attribute(rt, rc), Comparator.EQUAL, ConditionKind.JOIN)
        for (lt, lc), (rt, rc) in pairs
    ]
    return Join(left, right, conditions, algorithm, left.schema.join_with(right.schema))


TWO_TABLES = {
    'T1': (100, [('a', 50, 4)]),
    'T2': (100, [('b', 20, 4)]),
}


def test_scan_cost_and_cardinality():
    """Test scan cardinality is the tuple count and cost is its page count"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (101, [('a', 50, 4), ('b', 3, 4)])}, page_size=40)

        estimate = estimator.estimate(scans['T1'])
        assert estimate.cardinality == 101
        assert estimate.cost == 21  # 5 tuples per page
        assert estimate.feasible
        assert estimator.distinct_values[Attribute('T1', 'a')] == 50
        assert estimator.distinct_values[Attribute('T1', 'b')] == 3
    print("✓ scan cost works")


def test_scan_tuple_larger_than_page():
    """Test at least one tuple fits a page"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (30, [('a', 5, 100)])}, page_size=40)
        assert estimator.estimate(scans['T1']).cost == 30
    print("✓ oversized tuple works")


def test_select_equal():
    """Test equality selection yields ceil(n/d) and adds no cost"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (101, [('a', 10, 4), ('b', 40, 4)])}, page_size=4)

        estimate = estimator.estimate(_select(scans['T1'], 'a', Comparator.EQUAL))
        assert estimate.cardinality == 11
        assert estimate.cost == 101
    print("✓ equal selection works")


def test_select_not_equal():
    """Test inequality selection yields ceil(n - n/d)"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (100, [('a', 3, 4)])}, page_size=4)

        estimate = estimator.estimate(_select(scans['T1'], 'a', Comparator.NOT_EQUAL))
        assert estimate.cardinality == 67  # ceil(100 - 33.33)
        assert estimate.cost == 100
    print("✓ not-equal selection works")


def test_select_range():
    """Test every other comparator halves the input"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (101, [('a', 3, 4)])}, page_size=4)

        for comparator in (Comparator.LESS, Comparator.LESS_EQUAL, Comparator.GREATER, Comparator.GREATER_EQUAL):
            estimate = estimator.estimate(_select(scans['T1'], 'a', comparator))
            assert estimate.cardinality == 51
            assert estimate.cost == 101
    print("✓ range selection works")


def test_select_overwrites_every_distinct_count():
    """Test a selection stores its output cardinality as every column's distinct count"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (100, [('a', 50, 4), ('b', 80, 4)])}, page_size=4)

        estimator.estimate(_select(scans['T1'], 'a', Comparator.EQUAL))
        assert estimator.distinct_values[Attribute('T1', 'a')] == 2
        assert estimator.distinct_values[Attribute('T1', 'b')] == 2
    print("✓ selection distinct update works")


def test_chained_selects_see_updated_counts():
    """Test a second selection uses the counts left by the first"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (100, [('a', 10, 4), ('b', 80, 4)])}, page_size=4)

        first = _select(scans['T1'], 'a', Comparator.EQUAL)  # 10 tuples, all counts -> 10
        second = _select(first, 'b', Comparator.EQUAL)  # ceil(10 / 10)
        assert estimator.estimate(second).cardinality == 1
    print("✓ chained selections work")


def test_select_zero_distinct():
    """Test an empty column yields no tuples"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (0, [('a', 0, 4)])}, page_size=4)

        estimate = estimator.estimate(_select(scans['T1'], 'a', Comparator.EQUAL))
        assert estimate.cardinality == 0
        assert estimate.cost == 0
    print("✓ zero distinct works")


def test_project_is_passthrough():
    """Test projection changes neither cost nor cardinality"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        bases = [
            scans['T1'],
            _select(scans['T1'], 'a', Comparator.GREATER),
            _join(scans['T1'], scans['T2'], JoinAlgorithm.BLOCK_NESTED, (('T1', 'a'), ('T2', 'b'))),
        ]
        for base in bases:
            expected = estimator.estimate(base)
            columns = [base.schema.attribute(0)]
            project = Project(base, columns, base.schema.sub_schema(columns))
            assert estimator.estimate(project) == expected
    print("✓ projection passthrough works")


def test_nested_loop_join_end_to_end():
    """Test T1 (100, d=50) join T2 (100, d=20) with one tuple per page"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)
        scan_cost = estimator.estimate(scans['T1']).cost + estimator.estimate(scans['T2']).cost

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.NESTED_LOOP, (('T1', 'a'), ('T2', 'b')))
        estimate = estimator.estimate(join)

        assert estimate.cardinality == 200
        assert estimator.last_cardinality == 200
        assert estimate.cost - scan_cost == 10000
        assert estimate.cost == 10200
    print("✓ nested-loop join end to end works")


def test_join_with_unqualified_attributes():
    """Test join attributes resolve against each side's schema"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.NESTED_LOOP, ((None, 'a'), (None, 'b')))
        assert estimator.estimate(join).cardinality == 200
    print("✓ unqualified join attributes work")


def test_join_updates_distinct_counts_for_ancestors():
    """Test both join attributes take the smaller distinct count"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.NESTED_LOOP, (('T1', 'a'), ('T2', 'b')))
        above = Select(join, Condition(Attribute('T1', 'a'), 3), join.schema)
        estimate = estimator.estimate(above)

        assert estimator.distinct_values[Attribute('T2', 'b')] == 10  # overwritten by the select
        assert estimate.cardinality == 10  # ceil(200 / 20)
    print("✓ join distinct update works")


def test_join_multiple_conditions():
    """Test each condition divides by its larger distinct count"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {
            'T1': (100, [('a', 50, 4), ('c', 4, 4)]),
            'T2': (100, [('b', 20, 4), ('d', 5, 4)]),
        }, page_size=8)

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.SORT_MERGE,
                     (('T1', 'a'), ('T2', 'b')), (('T1', 'c'), ('T2', 'd')))
        estimate = estimator.estimate(join)

        assert estimate.cardinality == 40  # 10000 / 50 / 5
        assert estimator.distinct_values[Attribute('T1', 'c')] == 4
        assert estimator.distinct_values[Attribute('T2', 'd')] == 4
    print("✓ multiple join conditions work")


def test_block_nested_loop_cost():
    """Test BNLJ cost is leftPages + ceil(leftPages / (B - 2)) * rightPages"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4, buffers_per_join=5)

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.BLOCK_NESTED, (('T1', 'a'), ('T2', 'b')))
        estimate = estimator.estimate(join)

        assert estimate.cost == 200 + 100 + 34 * 100
        assert estimate.cardinality == 200
    print("✓ block-nested-loop cost works")


def test_sort_merge_charges_nothing():
    """Test sort-merge join adds no cost whatever the page counts"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {
            'T1': (5000, [('a', 50, 4)]),
            'T2': (7000, [('b', 20, 4)]),
        }, page_size=4, buffers_per_join=3)

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.SORT_MERGE, (('T1', 'a'), ('T2', 'b')))
        estimate = estimator.estimate(join)

        assert estimate.cost == 5000 + 7000
        assert estimate.cardinality == 700000
        assert estimate.feasible
    print("✓ sort-merge zero cost works")


def test_join_insufficient_buffers():
    """Test BNLJ and sort-merge with fewer than 3 buffers are infeasible"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4, buffers_per_join=2)

        for algorithm in (JoinAlgorithm.BLOCK_NESTED, JoinAlgorithm.SORT_MERGE):
            join = _join(scans['T1'], scans['T2'], algorithm, (('T1', 'a'), ('T2', 'b')))
            estimate = estimator.estimate(join)
            assert estimate.cost == MAX_COST
            assert not estimate.feasible

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.NESTED_LOOP, (('T1', 'a'), ('T2', 'b')))
        assert estimator.estimate(join).cost == 10200
    print("✓ insufficient join buffers work")


def test_unsupported_join_algorithm():
    """Test an unknown algorithm code yields the sentinel cost"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        join = _join(scans['T1'], scans['T2'], 9, (('T1', 'a'), ('T2', 'b')))
        estimate = estimator.estimate(join)

        assert estimate.cost == MAX_COST
        assert not estimate.feasible
        assert not estimator.is_feasible
    print("✓ unsupported join algorithm works")


@dataclass
class Bogus:
    schema: Schema


def test_unknown_operator_is_infeasible():
    """Test an unrecognized node kind makes the whole pass infeasible"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        bogus = Bogus(scans['T2'].schema)
        join = _join(scans['T1'], bogus, JoinAlgorithm.NESTED_LOOP, (('T1', 'a'), ('T2', 'b')))
        assert estimator.estimate(bogus).cost == MAX_COST
        assert estimator.estimate(join).cost == MAX_COST
        assert estimator.estimate(Project(bogus, [], bogus.schema)).cost == MAX_COST
    print("✓ unknown operator works")


def test_infeasibility_is_sticky_and_reset_per_pass():
    """Test an infeasible subtree poisons the pass but not the next one"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        bad = _join(scans['T1'], scans['T2'], 9, (('T1', 'a'), ('T2', 'b')))
        above = _select(bad, 'a', Comparator.EQUAL)
        assert estimator.estimate(above).cost == MAX_COST

        good = scans['T1']
        assert estimator.estimate(good).cost == 100
        assert estimator.estimate(good).cost == 100
        assert estimator.is_feasible
    print("✓ sticky infeasibility works")


def test_distinct_values_reset_per_pass():
    """Test statistics from an earlier plan do not leak into the next estimate"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)

        join = _join(scans['T1'], scans['T2'], JoinAlgorithm.NESTED_LOOP, (('T1', 'a'), ('T2', 'b')))
        estimator.estimate(join)
        assert estimator.distinct_values[Attribute('T2', 'b')] == 20

        estimator.estimate(scans['T1'])
        assert estimator.distinct_values == {Attribute('T1', 'a'): 50}
    print("✓ distinct-value reset works")


def test_sort_based_nodes():
    """Test GroupBy, OrderBy, Distinct and Sort charge one external sort"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (1000, [('a', 10, 4)])}, page_size=40, num_buffers=5)
        scan = scans['T1']
        columns = [Attribute('T1', 'a')]

        nodes = [
            GroupBy(scan, columns, 5, scan.schema),
            OrderBy(scan, columns, True, 5, scan.schema),
            Distinct(scan, 5, scan.schema),
            Sort(scan, columns, 5, scan.schema),
        ]
        for node in nodes:
            estimate = estimator.estimate(node)
            # 100 pages, 20 runs, 1 + ceil(log4(20)) = 4 passes
            assert estimate.cost == 100 + 2 * 100 * 4
            assert estimate.cardinality == 1000
    print("✓ sort-based nodes work")


def test_sort_insufficient_buffers():
    """Test a sort with fewer than 3 pool buffers is infeasible"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, {'T1': (10, [('a', 10, 4)])}, page_size=4, num_buffers=2)
        scan = scans['T1']

        estimate = estimator.estimate(OrderBy(scan, [Attribute('T1', 'a')], False, 2, scan.schema))
        assert estimate.cost == MAX_COST
    print("✓ sort buffer shortage works")


def test_missing_statistics_propagates():
    """Test an unreadable stat file raises CatalogError instead of defaulting"""
    with tempfile.TemporaryDirectory() as tmp:
        estimator, scans = _setup(tmp, TWO_TABLES, page_size=4)
        scan = Scan('T3', scans['T1'].schema)
        try:
            estimator.estimate(scan)
            assert False, "expected CatalogError"
        except CatalogError:
            pass
    print("✓ missing statistics propagates")


def test_cost_helpers():
    """Test ceiling division and sort cost helpers"""
    assert ceil_div(0, 3) == 0
    assert ceil_div(10, 3) == 4
    assert ceil_div(9, 3) == 3

    assert external_sort_cost(0, 5) == 0
    assert external_sort_cost(5, 5) == 10  # single run
    assert external_sort_cost(100, 5) == 800
    assert external_sort_cost(750, 6) == 2 * 750 * 4  # runs = 125 = 5^3

    assert sort_merge_sort_cost(0, 5) == 0
    assert sort_merge_sort_cost(10, 5) == 2 * 10 * 2  # ceil(ln 2) = 1
    print("✓ cost helpers work")


if __name__ == '__main__':
    print("\nTesting PlanCostEstimator...\n")

    test_scan_cost_and_cardinality()
    test_scan_tuple_larger_than_page()
    test_select_equal()
    test_select_not_equal()
    test_select_range()
    test_select_overwrites_every_distinct_count()
    test_chained_selects_see_updated_counts()
    test_select_zero_distinct()
    test_project_is_passthrough()
    test_nested_loop_join_end_to_end()
    test_join_with_unqualified_attributes()
    test_join_updates_distinct_counts_for_ancestors()
    test_join_multiple_conditions()
    test_block_nested_loop_cost()
    test_sort_merge_charges_nothing()
    test_join_insufficient_buffers()
    test_unsupported_join_algorithm()
    test_unknown_operator_is_infeasible()
    test_infeasibility_is_sticky_and_reset_per_pass()
    test_distinct_values_reset_per_pass()
    test_sort_based_nodes()
    test_sort_insufficient_buffers()
    test_missing_statistics_propagates()
    test_cost_helpers()

    print("\n✅ All cost estimator tests passed!\n")
