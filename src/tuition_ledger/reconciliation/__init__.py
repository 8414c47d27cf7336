"""Reconciliation of externally reported payments.

This module merges payments reported through the virtual office (or any
loosely structured feed) into the local ledger.

Features:
- Synonym-tolerant field lookup and value normalization
- Deterministic identifiers for records that arrive without one
- Idempotent merge that only ever adds new Pending records
- Merge reports in JSON, CSV and text
"""

from .normalizer import (
    DataQualityWarning,
    FieldNormalizer,
    FIELD_SYNONYMS,
    NOT_FOUND,
    lookup,
    lookup_or,
)
from .merger import (
    MergeResult,
    ReconciliationMerger,
    merge_external,
    review_order,
    review_queue,
    synthesize_id,
)
from .report import ReportGenerator, daily_closing_text, ledger_csv

__all__ = [
    # Normalization
    "DataQualityWarning",
    "FieldNormalizer",
    "FIELD_SYNONYMS",
    "NOT_FOUND",
    "lookup",
    "lookup_or",
    # Merge
    "MergeResult",
    "ReconciliationMerger",
    "merge_external",
    "review_order",
    "review_queue",
    "synthesize_id",
    # Reports
    "ReportGenerator",
    "daily_closing_text",
    "ledger_csv",
]
