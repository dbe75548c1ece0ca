"""
Test runner for all components

Runs every test_* function of each suite in dependency order:
data model, catalog, join graph, plan builder, cost estimator,
SQL parser and the integrated pipeline.
"""

import importlib
import sys


SUITES = [
    ('data structures', 'test_data_structures'),
    ('Catalog', 'test_catalog'),
    ('JoinGraph', 'test_join_graph'),
    ('RandomInitialPlanBuilder', 'test_initial_plan'),
    ('PlanCostEstimator', 'test_plan_cost'),
    ('SQL parser', 'test_parser'),
    ('integration', 'test_integration'),
]


def run_suite(module_name: str) -> int:
    module = importlib.import_module(module_name)
    tests = [getattr(module, name) for name in dir(module)
             if name.startswith('test_') and callable(getattr(module, name))]
    for test in tests:
        test()
    return len(tests)


def main() -> int:
    print("=" * 60)
    print("RUNNING ALL TESTS")
    print("=" * 60)

    failed = []
    for phase, (label, module_name) in enumerate(SUITES, 1):
        print(f"\n{phase}. Testing {label}...")
        try:
            count = run_suite(module_name)
            print(f"   ✅ {label} OK ({count} tests)")
        except Exception as e:
            print(f"   ❌ {label} FAILED: {type(e).__name__}: {e}")
            failed.append(label)

    print("\n" + "=" * 60)
    print("TEST SUMMARY")
    print("=" * 60)
    if failed:
        print(f"Failed suites: {', '.join(failed)}")
        return 1
    print("All suites: ✅ PASSED")
    return 0


if __name__ == '__main__':
    sys.exit(main())
