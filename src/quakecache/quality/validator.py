"""
Rule runner.

DataValidator evaluates a RuleSet against a frame of cached records and
produces a ValidationReport.
"""

from typing import List

import pandas as pd

from .report import ValidationReport
from .rules import Rule, RuleSet


class DataValidator:
    """
    Validate a DataFrame against a set of rules.

    Usage:
        v = DataValidator("cache_us")
        v.add_rule(CompletenessRule(["id", "time_ms"]))
        v.add_rule(UniquenessRule(["scope", "id"]))

        report = v.validate(df)
        if not report.passed:
            report.print_failures()
    """

    def __init__(self, name: str = 'validation'):
        self.name = name
        self._ruleset = RuleSet(name)

    def add_rule(self, rule: Rule) -> 'DataValidator':
        self._ruleset.add(rule)
        return self

    def add_rules(self, rules: List[Rule]) -> 'DataValidator':
        for rule in rules:
            self._ruleset.add(rule)
        return self

    @property
    def rule_count(self) -> int:
        return len(self._ruleset)

    def validate(self, df: pd.DataFrame) -> ValidationReport:
        return ValidationReport(
            name=self.name,
            results=self._ruleset.evaluate(df),
            row_count=len(df),
            column_count=len(df.columns),
        )
