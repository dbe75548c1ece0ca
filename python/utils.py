"""
Utility functions for the command-line driver

Includes query-file reading and number formatting helpers
"""

import re
from typing import List, Tuple

from constants import MAX_COST


_STATEMENT = re.compile(r'(?is)\bSELECT\b.*?(?:;|\Z)')


def read_queries_from_file(filepath: str, semicolon_separated: bool = False) -> List[Tuple[int, str]]:
    """
    Read SQL queries from file

    Args:
        filepath: Path to input file
        semicolon_separated: If True, queries end with semicolons and may span lines.
                            If False, one query per line

    Returns:
        List of (line_number, query_text) tuples
    """
    with open(filepath, 'r') as f:
        content = f.read()

    if semicolon_separated:
        return split_statements(content)

    queries = []
    for line_num, line in enumerate(content.splitlines(), 1):
        match = _STATEMENT.search(line)
        if match:
            queries.append((line_num, _terminate(match.group(0))))
    return queries


def split_statements(content: str) -> List[Tuple[int, str]]:
    """
    Split text into SELECT statements, remembering where each one starts

    Text before a SELECT keyword (comments, blank lines) is ignored.
    """
    statements = []
    for match in _STATEMENT.finditer(content):
        text = match.group(0).strip()
        if not text:
            continue
        line_num = content.count('\n', 0, match.start()) + 1
        statements.append((line_num, _terminate(text)))
    return statements


def _terminate(query: str) -> str:
    query = query.strip()
    return query if query.endswith(';') else query + ';'


def format_cost(cost: int) -> str:
    """Cost for display; the infeasibility sentinel is shown as 'infeasible'"""
    if cost == MAX_COST:
        return 'infeasible'
    return str(cost)
