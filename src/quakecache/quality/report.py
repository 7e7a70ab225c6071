"""
Validation report.

Structures rule results into pass/fail counts and one-line issue
descriptions suitable for a cache status panel.
"""

from dataclasses import dataclass
from typing import Dict, List

from .rules import RuleResult


@dataclass
class ValidationReport:
    """
    Output of a validation run.

    Attributes:
        name: Name of this validation run.
        results: Individual rule results.
        row_count: Rows (cached records) checked.
        column_count: Columns in the checked frame.
    """
    name: str
    results: List[RuleResult]
    row_count: int
    column_count: int

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def pass_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.results if not r.passed)

    @property
    def total_rules(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> List[RuleResult]:
        return [r for r in self.results if not r.passed]

    def issues(self) -> List[str]:
        """One human-readable line per failed rule."""
        lines = []
        for r in self.failures:
            detail = ', '.join(f"{k}={v}" for k, v in r.details.items() if k != 'examples')
            lines.append(f"{r.rule_name} failed ({detail})" if detail else f"{r.rule_name} failed")
        return lines

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'passed': self.passed,
            'summary': {
                'total_rules': self.total_rules,
                'passed': self.pass_count,
                'failed': self.fail_count,
                'rows_checked': self.row_count,
            },
            'results': [
                {
                    'rule': r.rule_name,
                    'severity': r.severity,
                    'column': r.column,
                    'details': r.details,
                }
                for r in self.results
            ],
        }

    def print_summary(self) -> None:
        status = 'PASSED' if self.passed else 'FAILED'
        print(f"\n{'=' * 60}")
        print(f"  Integrity: {self.name}")
        print(f"  Status:    {status}")
        print(f"  Rules:     {self.pass_count}/{self.total_rules} passed")
        print(f"  Records:   {self.row_count:,}")
        print(f"{'=' * 60}")

    def print_failures(self) -> None:
        if not self.failures:
            print("  No failures.")
            return
        print(f"\n  Failures ({self.fail_count}):")
        for line in self.issues():
            print(f"  FAIL  {line}")
