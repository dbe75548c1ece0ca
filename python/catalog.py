"""
File-backed schema catalog and statistics store

Each table has two files in the catalog directory:

- <table>.schema.json: ordered attribute list and tuple size
- <table>.stat: line 1 = tuple count, line 2 = one distinct-value count
  per schema column, whitespace separated, in schema order

Any missing or malformed file raises CatalogError.
"""

import json
import logging
import os
from typing import Dict, List

from constants import Attribute, CatalogError, Schema, TableStatistics

logger = logging.getLogger(__name__)

SCHEMA_SUFFIX = '.schema.json'
STAT_SUFFIX = '.stat'


class Catalog:
    """
    Reads table schemas and statistics from a directory
    """

    def __init__(self, directory: str = '.'):
        self.directory = directory

    def schema_path(self, table: str) -> str:
        return os.path.join(self.directory, table + SCHEMA_SUFFIX)

    def stat_path(self, table: str) -> str:
        return os.path.join(self.directory, table + STAT_SUFFIX)

    def load_schema(self, table: str) -> Schema:
        """
        Read the schema descriptor of a table

        Descriptor format:
            {"attributes": [{"name": "a", "type": "INTEGER", "size": 4}, ...],
             "tuple_size": 4}

        "tuple_size" defaults to the sum of attribute sizes.

        Args:
            table: Table name

        Returns:
            Schema with attributes qualified by the table name

        Raises:
            CatalogError: If the descriptor is missing or malformed
        """
        path = self.schema_path(table)
        try:
            with open(path, 'r') as f:
                descriptor = json.load(f)
        except OSError as e:
            raise CatalogError(f"Cannot read schema of table {table}: {e}", path) from e
        except ValueError as e:
            raise CatalogError(f"Malformed schema descriptor {path}: {e}", path) from e

        try:
            attributes = [
                Attribute(
                    table=table,
                    name=column['name'],
                    type=column.get('type', 'INTEGER'),
                    size=int(column.get('size', 4))
                )
                for column in descriptor['attributes']
            ]
            tuple_size = int(descriptor.get('tuple_size', sum(a.size for a in attributes)))
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Malformed schema descriptor {path}: {e}", path) from e

        if tuple_size <= 0:
            raise CatalogError(f"Tuple size of table {table} must be positive", path)

        logger.debug("Loaded schema of %s: %d columns, %d bytes/tuple",
                     table, len(attributes), tuple_size)
        return Schema(attributes=attributes, tuple_size=tuple_size)

    def load_statistics(self, table: str, num_columns: int) -> TableStatistics:
        """
        Read the statistics record of a table

        Args:
            table: Table name
            num_columns: Number of columns the second line must hold

        Returns:
            TableStatistics

        Raises:
            CatalogError: If the file is unreadable or has wrong token counts
        """
        path = self.stat_path(table)
        try:
            with open(path, 'r') as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise CatalogError(f"Error in opening file {path}: {e}", path) from e

        return parse_statistics(lines, num_columns, path)

    def write_table(self, table: str, columns: List[Dict], tuple_count: int,
                    distinct_counts: List[int]) -> None:
        """Write schema descriptor and statistics record of a table"""
        os.makedirs(self.directory, exist_ok=True)
        descriptor = {
            'attributes': columns,
            'tuple_size': sum(int(c.get('size', 4)) for c in columns)
        }
        with open(self.schema_path(table), 'w') as f:
            json.dump(descriptor, f, indent=2)
        with open(self.stat_path(table), 'w') as f:
            f.write(f"{tuple_count}\n")
            f.write(' '.join(str(d) for d in distinct_counts) + '\n')


def parse_statistics(lines: List[str], num_columns: int, path: str = '<memory>') -> TableStatistics:
    """
    Parse the two lines of a statistics record

    Args:
        lines: File content split into lines
        num_columns: Expected number of distinct-value counts
        path: Source name used in error messages

    Returns:
        TableStatistics
    """
    if len(lines) < 2:
        raise CatalogError(f"Incorrect format of statistics file {path}: expected 2 lines", path)

    first = lines[0].split()
    if len(first) != 1:
        raise CatalogError(
            f"Incorrect format of statistics file {path}: "
            f"line 1 has {len(first)} tokens, expected 1", path)

    second = lines[1].split()
    if len(second) != num_columns:
        raise CatalogError(
            f"Incorrect format of statistics file {path}: "
            f"line 2 has {len(second)} tokens, expected {num_columns}", path)

    try:
        tuple_count = int(first[0])
        distinct_counts = [int(token) for token in second]
    except ValueError as e:
        raise CatalogError(f"Incorrect format of statistics file {path}: {e}", path) from e

    if tuple_count < 0 or any(d < 0 for d in distinct_counts):
        raise CatalogError(f"Negative count in statistics file {path}", path)

    return TableStatistics(tuple_count=tuple_count, distinct_counts=distinct_counts)
