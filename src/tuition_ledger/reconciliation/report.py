"""Report generation for merge results, receivables and daily closings."""

import csv
import io
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List

from ..accounting.reports import DailyClosing, LedgerOverview
from .merger import MergeResult

PAYMENT_COLUMNS = [
    "id", "timestamp", "payment_date", "cedula_representative", "matricula",
    "level", "method", "reference", "amount", "status", "payment_type",
]


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _payment_row(record) -> List[Any]:
    return [
        record.id,
        record.timestamp.isoformat(),
        record.payment_date.isoformat(),
        record.cedula_representative,
        record.matricula,
        record.level.value,
        record.method.value,
        record.reference,
        f"{record.amount:.2f}",
        record.status.value,
        record.payment_type.value,
    ]


class ReportGenerator:
    """Generator for merge reports in various formats."""

    def __init__(self, result: MergeResult):
        """Initialize the report generator.

        Args:
            result: The merge result to generate output from.
        """
        self.result = result

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the merge.

        Args:
            include_details: If True, include new records and warnings.
            indent: JSON indentation level.

        Returns:
            JSON string representation of the merge.
        """
        data: Dict[str, Any] = {"summary": self.result.to_summary_dict()}
        if include_details:
            data["new_records"] = [
                r.model_dump(mode="json", by_alias=True) for r in self.result.new_records
            ]
            data["warnings"] = [w.model_dump(mode="json") for w in self.result.warnings]
        return json.dumps(data, indent=indent, default=_json_default)

    def to_csv(self, record_type: str = "new") -> str:
        """Generate CSV of new records or data quality warnings.

        Args:
            record_type: 'new' or 'warnings'.

        Returns:
            CSV string with the requested rows.
        """
        output = io.StringIO()
        writer = csv.writer(output)
        if record_type == "warnings":
            writer.writerow(["record_index", "field", "raw_value", "message"])
            for w in self.result.warnings:
                writer.writerow([
                    "" if w.record_index is None else w.record_index,
                    w.field,
                    "" if w.raw_value is None else w.raw_value,
                    w.message,
                ])
        elif record_type == "new":
            writer.writerow(PAYMENT_COLUMNS)
            for record in self.result.new_records:
                writer.writerow(_payment_row(record))
        else:
            raise ValueError(f"Unknown record type: {record_type}")
        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary of the merge."""
        summary = self.result.to_summary_dict()
        lines = [
            "=" * 60,
            "EXTERNAL PAYMENTS MERGE SUMMARY",
            "=" * 60,
            f"  Records Received: {summary['total_received']}",
            f"  New Pending Records: {summary['total_new']}",
            f"  Already In Ledger: {summary['duplicates']}",
            f"  Already Resolved: {summary['already_resolved']}",
            f"  Without Representative: {summary['invalid']}",
            f"  Data Quality Warnings: {summary['warnings']}",
            "=" * 60,
        ]
        return "\n".join(lines)

    def to_detailed_text(self) -> str:
        """Summary followed by the new records and warnings."""
        lines = [self.to_summary_text(), ""]

        if self.result.new_records:
            lines.extend(["NEW RECORDS", "-" * 40])
            for r in self.result.new_records:
                lines.append(
                    f"  {r.id} | {r.cedula_representative} | {r.method.value} | "
                    f"Ref: {r.reference} | {r.amount:.2f}"
                )
            lines.append("")

        if self.result.warnings:
            lines.extend(["DATA QUALITY WARNINGS", "-" * 40])
            for w in self.result.warnings:
                where = f"#{w.record_index}" if w.record_index is not None else "-"
                lines.append(f"  [{where}] {w.field}: {w.message} (got {w.raw_value!r})")
            lines.append("")

        return "\n".join(lines)


def daily_closing_text(closing: DailyClosing) -> str:
    """Printable cash register closing."""
    lines = [
        "=" * 60,
        f"DAILY CLOSING {closing.day.isoformat()}",
        "=" * 60,
        f"  Cash USD:   {closing.cash_usd:>12.2f}",
        f"  Bolivares:  {closing.bolivares:>12.2f}",
        f"  Zelle:      {closing.zelle:>12.2f}",
        f"  Others:     {closing.others:>12.2f}",
        "-" * 60,
        f"  Total:      {closing.grand_total:>12.2f}",
        f"  Payments:   {len(closing.payments)}",
        "=" * 60,
    ]
    return "\n".join(lines)


def ledger_csv(overview: LedgerOverview) -> str:
    """Receivables ledger as CSV, one row per representative."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "cedula", "full_name", "matricula", "students", "total_accrued",
        "total_paid", "in_transit", "balance", "last_payment_date", "critical",
    ])
    for e in overview.entries:
        writer.writerow([
            e.cedula,
            e.full_name,
            e.matricula,
            e.student_count,
            f"{e.total_accrued:.2f}",
            f"{e.total_paid:.2f}",
            f"{e.in_transit:.2f}",
            f"{e.balance:.2f}",
            e.last_payment_date.isoformat() if e.last_payment_date else "",
            "yes" if e.is_critical else "no",
        ])
    return output.getvalue()
