"""
Main entry point for the random plan cost estimator

Command-line interface that builds one random plan per query, estimates
its cost and cardinality from table statistics, and writes CSV output.
"""

import argparse
import csv
import logging
import random
import sys
from typing import Dict

from tqdm import tqdm

from catalog import Catalog
from constants import CatalogError, OptimizerConfig
from formatter import format_plan, format_plan_inline
from initial_plan import RandomInitialPlanBuilder
from parser import describe_query, parse_sql
from plan_cost import PlanCostEstimator
from utils import format_cost, read_queries_from_file


FIELDNAMES = ['query_id', 'joins', 'cost', 'cardinality', 'plan']


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Random initial plan builder and cost estimator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic usage (one query per line), catalog files in ./catalog
  python main.py queries.sql --catalog catalog

  # Semicolon-separated queries, reproducible join algorithms
  python main.py benchmark.sql --semicolon-separated --seed 42

  # Small buffer pool
  python main.py queries.sql --num-buffers 10 --buffers-per-join 3 --verbose
        """
    )

    parser.add_argument('input_file', help='Input SQL file')
    parser.add_argument('--output', '-o', default='output.csv',
                        help='Output CSV file (default: output.csv)')
    parser.add_argument('--catalog', default='.',
                        help='Directory with <table>.schema.json and <table>.stat files (default: .)')
    parser.add_argument('--page-size', type=int, default=4096,
                        help='Page size in bytes (default: 4096)')
    parser.add_argument('--num-buffers', type=int, default=100,
                        help='Total buffer pool pages (default: 100)')
    parser.add_argument('--buffers-per-join', type=int, default=10,
                        help='Buffer pages per join (default: 10)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for join algorithm choice')
    parser.add_argument('--semicolon-separated', action='store_true',
                        help='Input file has semicolon-separated queries (default: one per line)')
    parser.add_argument('--stop-on-error', action='store_true',
                        help='Stop processing on first error (default: continue)')
    parser.add_argument('--dialect', default='postgres',
                        help='SQL dialect (default: postgres)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')
    return parser


def main():
    """
    Main entry point for CLI

    Usage:
        python main.py input.sql --catalog DIR --output results.csv
    """
    args = build_arg_parser().parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    try:
        config = OptimizerConfig(
            page_size=args.page_size,
            num_buffers=args.num_buffers,
            buffers_per_join=args.buffers_per_join
        )
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        queries = read_queries_from_file(args.input_file, args.semicolon_separated)
    except FileNotFoundError:
        print(f"ERROR: File not found: {args.input_file}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"ERROR: Failed to read input file: {e}", file=sys.stderr)
        sys.exit(1)

    if not queries:
        print(f"WARNING: No queries found in {args.input_file}", file=sys.stderr)
        sys.exit(0)

    catalog = Catalog(args.catalog)
    builder = RandomInitialPlanBuilder(catalog, config, rng=random.Random(args.seed))
    estimator = PlanCostEstimator(catalog, config)

    completed = 0
    errors = []

    try:
        with open(args.output, 'w', newline='') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=FIELDNAMES)
            writer.writeheader()

            progress_bar = tqdm(queries, desc="Estimating plans")

            for query_id, (line_num, query_text) in enumerate(progress_bar, 1):
                try:
                    row = process_query(query_text, query_id, builder, estimator, args.dialect)
                    writer.writerow(row)
                    completed += 1

                    if args.verbose:
                        progress_bar.write(f"Query {query_id}: cost={row['cost']} "
                                           f"cardinality={row['cardinality']}")
                        progress_bar.write(format_plan(builder.root))

                except (ValueError, CatalogError) as e:
                    progress_bar.write(f"ERROR at line {line_num}: {e}")

                    if args.verbose:
                        progress_bar.write(f"  Query: {query_text[:100]}...")

                    errors.append((line_num, str(e)))

                    if args.stop_on_error:
                        progress_bar.write("\nStopping due to error (--stop-on-error enabled)")
                        sys.exit(1)

    except OSError as e:
        print(f"\nERROR: Failed to write output file: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\nCompleted: {completed}/{len(queries)} queries")
    if errors:
        print(f"Errors: {len(errors)} queries failed")
    print(f"Output written to: {args.output}")


def process_query(
    sql: str,
    query_id: int,
    builder: RandomInitialPlanBuilder,
    estimator: PlanCostEstimator,
    dialect: str = 'postgres'
) -> Dict:
    """
    Build and estimate a random plan for a single SQL query

    Args:
        sql: SQL query string
        query_id: Query identifier
        builder: Plan builder (its random source decides join algorithms)
        estimator: Cost estimator
        dialect: SQL dialect for parsing

    Returns:
        Dict with keys: query_id, joins, cost, cardinality, plan
    """
    query = parse_sql(sql, dialect=dialect)
    logging.getLogger(__name__).debug("Query %d: %s", query_id, describe_query(query))

    root = builder.build_for_query(query)
    estimate = estimator.estimate(root)

    return {
        'query_id': query_id,
        'joins': builder.num_joins,
        'cost': format_cost(estimate.cost),
        'cardinality': estimate.cardinality,
        'plan': format_plan_inline(root)
    }


if __name__ == '__main__':
    main()
