"""
Migration report generator.

Summarizes one migration run:
- Operation counts (tables and columns added/removed/modified, indexes, FKs)
- Warnings grouped by kind
- The ordered list of affected tables
"""

from typing import Dict, List
from collections import defaultdict

from core.diagnostics import WarningKind
from core.differ import SchemaDiff, MigrationResult


class MigrationReport:
    """
    Report over a SchemaDiff and the MigrationResult generated from it.

    Deterministic: same inputs -> same report.
    """

    def __init__(self, diff: SchemaDiff, result: MigrationResult):
        self.diff = diff
        self.result = result
        self._generate_report()

    def _generate_report(self):
        self.counts = self._calculate_counts()
        self.warnings = self._collect_warnings()
        self.tables = self._affected_tables()

    def _calculate_counts(self) -> Dict[str, int]:
        modified = self.diff.tables_to_modify
        return {
            'tables_added': len(self.diff.tables_to_add),
            'tables_removed': len(self.diff.tables_to_remove),
            'tables_modified': len(modified),
            'columns_added': sum(len(t.columns_to_add) for t in modified),
            'columns_removed': sum(len(t.columns_to_remove) for t in modified),
            'columns_modified': sum(len(t.columns_to_modify) for t in modified),
            'indexes_added': sum(len(t.indexes_to_add) for t in modified),
            'indexes_removed': sum(len(t.indexes_to_remove) for t in modified),
            'foreign_keys_added': sum(len(t.relations_to_add) for t in modified),
            'foreign_keys_removed': sum(len(t.relations_to_remove) for t in modified),
        }

    def _collect_warnings(self) -> Dict[str, List[str]]:
        """
        Group rendered warnings by kind.

        Every kind is present (possibly empty) and messages are sorted, so two
        runs over the same diff compare equal.
        """
        grouped = defaultdict(list)
        for warning in self.result.warnings:
            grouped[warning.kind.value].append(warning.render())
        return {kind.value: sorted(grouped[kind.value]) for kind in WarningKind}

    def _affected_tables(self) -> List[str]:
        names = {e.name for e in self.diff.tables_to_add}
        names |= {e.name for e in self.diff.tables_to_remove}
        names |= {t.table_name for t in self.diff.tables_to_modify}
        return sorted(names)

    @property
    def warning_count(self) -> int:
        return sum(len(messages) for messages in self.warnings.values())

    def to_markdown(self) -> str:
        lines = ["# Migration Report", ""]
        status = "success" if self.result.success else f"failed: {self.result.error}"
        lines.append(f"Status: {status}")
        lines.append("")

        lines.append("## Operations")
        lines.append("")
        lines.append("| Operation | Count |")
        lines.append("|---|---|")
        for name, count in self.counts.items():
            lines.append(f"| {name.replace('_', ' ')} | {count} |")
        lines.append("")

        if self.tables:
            lines.append("## Affected Tables")
            lines.append("")
            for table in self.tables:
                lines.append(f"- {table}")
            lines.append("")

        lines.append(f"## Warnings ({self.warning_count})")
        lines.append("")
        for kind, messages in self.warnings.items():
            if not messages:
                continue
            lines.append(f"### {kind.replace('_', ' ').title()}")
            lines.append("")
            for message in messages:
                lines.append(f"- {message}")
            lines.append("")
        if not self.warning_count:
            lines.append("None.")
            lines.append("")

        return "\n".join(lines)

    def to_dict(self) -> Dict:
        return {
            'success': self.result.success,
            'error': self.result.error,
            'counts': self.counts,
            'tables': self.tables,
            'warnings': self.warnings,
            'warning_count': self.warning_count,
        }


def generate_report(diff: SchemaDiff, result: MigrationResult) -> MigrationReport:
    """
    Generate a migration report.

    Args:
        diff: The diff the migration was generated from
        result: Output of generate_migration_sql

    Returns:
        MigrationReport with counts and grouped warnings
    """
    return MigrationReport(diff, result)
