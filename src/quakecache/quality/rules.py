"""
Data quality rules for cached event frames.

Each rule checks one property of a DataFrame of cached records (one row
per record, see ``integrity.cache_frame``). Rules are composable via
RuleSet and return structured results for reporting.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd


@dataclass
class RuleResult:
    """Result of a single rule evaluation."""
    rule_name: str
    passed: bool
    column: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> str:
        return 'PASS' if self.passed else 'FAIL'


class Rule(ABC):
    """Base class for all rules."""

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__

    @abstractmethod
    def evaluate(self, df: pd.DataFrame) -> RuleResult:
        """Run this rule against a DataFrame and return a result."""
        ...

    def _missing(self, df: pd.DataFrame, columns: List[str]) -> Optional[RuleResult]:
        missing = [c for c in columns if c not in df.columns]
        if not missing:
            return None
        return RuleResult(
            rule_name=self.name,
            passed=False,
            column=','.join(columns),
            details={'error': f'missing columns: {missing}'},
        )


class CompletenessRule(Rule):
    """
    Required columns must not hold nulls.

    Args:
        columns: Column names to check.
        threshold: Minimum non-null ratio (0.0 to 1.0). Default 1.0.
    """

    def __init__(self, columns: List[str], threshold: float = 1.0, name: Optional[str] = None):
        super().__init__(name or f"completeness_{','.join(columns)}")
        self.columns = columns
        self.threshold = threshold

    def evaluate(self, df: pd.DataFrame) -> RuleResult:
        missing = self._missing(df, self.columns)
        if missing:
            return missing

        failures = {}
        total = len(df)
        for col in self.columns:
            non_null = int(df[col].notna().sum())
            ratio = non_null / total if total > 0 else 1.0
            if ratio < self.threshold:
                failures[col] = {
                    'completeness': round(ratio, 4),
                    'null_count': total - non_null,
                }

        return RuleResult(
            rule_name=self.name,
            passed=not failures,
            column=','.join(self.columns),
            details={'failures': failures} if failures else {},
        )


class UniquenessRule(Rule):
    """
    Key columns must identify at most one row.

    Args:
        columns: Columns that form the key (e.g. ``['scope', 'id']``).
    """

    def __init__(self, columns: List[str], name: Optional[str] = None):
        super().__init__(name or f"uniqueness_{','.join(columns)}")
        self.columns = columns

    def evaluate(self, df: pd.DataFrame) -> RuleResult:
        missing = self._missing(df, self.columns)
        if missing:
            return missing

        dup_mask = df.duplicated(subset=self.columns, keep=False)
        dup_count = int(dup_mask.sum())
        details: Dict[str, Any] = {'duplicate_rows': dup_count, 'total_rows': len(df)}
        if dup_count:
            details['examples'] = df.loc[dup_mask, self.columns].head(5).to_dict('records')
        return RuleResult(
            rule_name=self.name,
            passed=dup_count == 0,
            column=','.join(self.columns),
            details=details,
        )


class RangeRule(Rule):
    """
    Numeric values must fall within ``[min_val, max_val]``. Nulls are skipped.
    """

    def __init__(
        self,
        column: str,
        min_val: Optional[float] = None,
        max_val: Optional[float] = None,
        name: Optional[str] = None,
    ):
        super().__init__(name or f"range_{column}")
        self.column = column
        self.min_val = min_val
        self.max_val = max_val

    def evaluate(self, df: pd.DataFrame) -> RuleResult:
        missing = self._missing(df, [self.column])
        if missing:
            return missing

        values = pd.to_numeric(df[self.column], errors='coerce').dropna()
        violations = 0
        if self.min_val is not None:
            violations += int((values < self.min_val).sum())
        if self.max_val is not None:
            violations += int((values > self.max_val).sum())

        return RuleResult(
            rule_name=self.name,
            passed=violations == 0,
            column=self.column,
            details={
                'violations': violations,
                'checked': len(values),
                'min_found': float(values.min()) if len(values) > 0 else None,
                'max_found': float(values.max()) if len(values) > 0 else None,
            },
        )


class ColumnMatchRule(Rule):
    """
    Two columns must hold equal values on every row.

    Used to check that each record's own UTC day matches the day key it
    is cached under.
    """

    def __init__(self, left: str, right: str, name: Optional[str] = None):
        super().__init__(name or f"match_{left}_{right}")
        self.left = left
        self.right = right

    def evaluate(self, df: pd.DataFrame) -> RuleResult:
        missing = self._missing(df, [self.left, self.right])
        if missing:
            return missing

        mismatched = df[self.left] != df[self.right]
        count = int(mismatched.sum())
        return RuleResult(
            rule_name=self.name,
            passed=count == 0,
            column=f"{self.left},{self.right}",
            details={'mismatches': count, 'checked': len(df)},
        )


class CustomRule(Rule):
    """
    Rule backed by a callable returning ``(passed, details)``.
    """

    def __init__(
        self,
        func: Callable[[pd.DataFrame], Tuple[bool, Dict[str, Any]]],
        name: str = 'custom_rule',
        column: Optional[str] = None,
    ):
        super().__init__(name)
        self.func = func
        self.column = column

    def evaluate(self, df: pd.DataFrame) -> RuleResult:
        passed, details = self.func(df)
        return RuleResult(
            rule_name=self.name,
            passed=bool(passed),
            column=self.column,
            details=details,
        )


class RuleSet:
    """
    A named collection of rules that run together.

    Usage:
        rules = RuleSet("cache")
        rules.add(CompletenessRule(["id", "time_ms"]))
        rules.add(RangeRule("latitude", -90, 90))
        results = rules.evaluate(df)
    """

    def __init__(self, name: str = 'default'):
        self.name = name
        self.rules: List[Rule] = []

    def add(self, rule: Rule) -> 'RuleSet':
        self.rules.append(rule)
        return self

    def evaluate(self, df: pd.DataFrame) -> List[RuleResult]:
        return [rule.evaluate(df) for rule in self.rules]

    def __len__(self) -> int:
        return len(self.rules)
