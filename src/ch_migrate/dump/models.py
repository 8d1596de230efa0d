"""Models for batch windows and per-table run results.

Usage:
    from ch_migrate.dump.models import BatchWindow, RunSummary

    summary = RunSummary(operation="export", database="analytics")
    summary.record("events", "exported", rows=25)
    print(summary.format_report())
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TableStatus = Literal["exported", "imported", "skipped", "failed"]

VIEW_ENGINE = "View"


class BatchWindow(BaseModel):
    """A contiguous ``[offset, offset + size)`` slice of a table's rows."""

    model_config = ConfigDict(frozen=True)

    offset: int = Field(ge=0)
    size: int = Field(ge=1)

    @property
    def end(self) -> int:
        """Exclusive end offset."""
        return self.offset + self.size


class TableOutcome(BaseModel):
    """Result of exporting or importing one table."""

    table: str
    status: TableStatus
    rows: int | None = None  # rows requested (export) when known
    detail: str = ""


class TableInfo(BaseModel):
    """A table as listed by ``describe_tables``."""

    name: str
    engine: str
    rows: int | None = None  # None for views

    @property
    def is_view(self) -> bool:
        return self.engine == VIEW_ENGINE


class RunSummary(BaseModel):
    """Per-table ledger of an export or import run."""

    operation: Literal["export", "import"]
    database: str
    tables: list[TableOutcome] = Field(default_factory=list)

    def record(
        self,
        table: str,
        status: TableStatus,
        rows: int | None = None,
        detail: str = "",
    ) -> TableOutcome:
        outcome = TableOutcome(table=table, status=status, rows=rows, detail=detail)
        self.tables.append(outcome)
        return outcome

    @property
    def failed(self) -> list[TableOutcome]:
        return [t for t in self.tables if t.status == "failed"]

    @property
    def skipped(self) -> list[TableOutcome]:
        return [t for t in self.tables if t.status == "skipped"]

    @property
    def success(self) -> bool:
        """True when no table failed."""
        return not self.failed

    def format_report(self) -> str:
        """Format the run as a human-readable report."""
        done = len(self.tables) - len(self.failed) - len(self.skipped)
        lines = [
            f"{self.operation.capitalize()} of {self.database}: "
            f"{done} done, {len(self.skipped)} skipped, {len(self.failed)} failed"
        ]

        if self.failed:
            lines.append(f"\n  Failed tables ({len(self.failed)}):")
            for outcome in self.failed:
                lines.append(f"    - {outcome.table}: {outcome.detail}")

        return "\n".join(lines)
