"""Tabular row decoding and workbook rendering."""

from expense_settlement.reporting.rows import (
    PAPER_CLAIM_FIELDS,
    REVENUE_FIELDS,
    decode_paper_claim_rows,
    normalize_row,
    read_xlsx_rows,
)
from expense_settlement.reporting.workbook import XLSX_MIME_TYPE, Sheet, Workbook, render_xlsx

__all__ = [
    "PAPER_CLAIM_FIELDS",
    "REVENUE_FIELDS",
    "XLSX_MIME_TYPE",
    "Sheet",
    "Workbook",
    "decode_paper_claim_rows",
    "normalize_row",
    "read_xlsx_rows",
    "render_xlsx",
]
