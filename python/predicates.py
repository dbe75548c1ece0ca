"""
Predicate Classifier

Splits WHERE/ON conditions into selections (one table) and joins (two tables).
"""

from typing import List

from constants import Attribute, Condition, ConditionKind


class PredicateClassifier:
    """
    Classifies conditions into selections and joins
    """

    def __init__(self):
        self.all_predicates: List[Condition] = []
        self.selections: List[Condition] = []  # Single-table predicates
        self.joins: List[Condition] = []  # Two-table predicates

    def add_predicate(self, condition: Condition) -> None:
        self.all_predicates.append(condition)

    def classify_predicates(self) -> None:
        """
        Classify all predicates into selections and joins

        Column-vs-column comparisons across two tables become join
        conditions; everything else is a selection on its left attribute.
        """
        self.selections = []
        self.joins = []

        for condition in self.all_predicates:
            tables = condition.tables()
            if isinstance(condition.rhs, Attribute) and len(tables) == 2:
                self.joins.append(_with_kind(condition, ConditionKind.JOIN))
            else:
                self.selections.append(_with_kind(condition, ConditionKind.SELECT))


def _with_kind(condition: Condition, kind: ConditionKind) -> Condition:
    if condition.kind == kind:
        return condition
    return Condition(condition.lhs, condition.rhs, condition.comparator, kind)
