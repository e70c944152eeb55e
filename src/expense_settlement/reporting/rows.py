"""Tabular-row decoder.

Turns spreadsheet payloads or loosely keyed dicts into row dicts keyed by
canonical field names. Header matching ignores case, spaces, underscores
and hyphens, so ``projectId``, ``project_id`` and ``Project ID`` are the
same column.
"""

from __future__ import annotations

import base64
import binascii
from io import BytesIO
from typing import Any, Iterable, Mapping

from openpyxl import load_workbook

from expense_settlement.errors import ValidationError

PAPER_CLAIM_FIELDS: dict[str, str] = {
    "projectid": "project_id",
    "project": "project_id",
    "applicantid": "applicant_id",
    "applicant": "applicant_id",
    "occurdate": "occur_date",
    "date": "occur_date",
    "category": "category",
    "amount": "amount",
    "taxamount": "tax_amount",
    "tax": "tax_amount",
    "remark": "remark",
    "note": "remark",
}

REVENUE_FIELDS: dict[str, str] = {
    "projectid": "project_id",
    "project": "project_id",
    "revenueamount": "revenue_amount",
    "revenue": "revenue_amount",
    "amount": "revenue_amount",
}


def norm_key(header: Any) -> str:
    """Normalize a header for tolerant matching."""
    if header is None:
        return ""
    s = str(header).strip().lower()
    for ch in ("\u200f", "\u200e", "\ufeff"):
        s = s.replace(ch, "")
    for sep in (" ", "_", "-", "/"):
        s = s.replace(sep, "")
    return s


def normalize_row(raw: Mapping[str, Any], aliases: Mapping[str, str]) -> dict[str, Any]:
    """Re-key a raw row onto canonical field names; unknown keys are dropped."""
    row: dict[str, Any] = {}
    for key, value in raw.items():
        field_name = aliases.get(norm_key(key))
        if field_name and field_name not in row:
            row[field_name] = value
    return row


def _is_empty_row(values: Iterable[Any]) -> bool:
    return all(v is None or str(v).strip() == "" for v in values)


def read_xlsx_rows(content: bytes, max_rows: int = 10000) -> list[dict[str, Any]]:
    """Read the first sheet of an .xlsx file into dicts keyed by header text."""
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(f"Could not read spreadsheet: {e}") from e

    try:
        if not wb.sheetnames:
            raise ValidationError("Spreadsheet has no sheets")
        ws = wb[wb.sheetnames[0]]
        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if header_row is None:
            return []
        headers = [str(h).strip() if h is not None else "" for h in header_row]

        rows: list[dict[str, Any]] = []
        for values in rows_iter:
            if _is_empty_row(values):
                continue
            rows.append({h: v for h, v in zip(headers, values) if h})
            if len(rows) >= max_rows:
                break
        return rows
    finally:
        wb.close()


def decode_paper_claim_rows(file_base64: str) -> list[dict[str, Any]]:
    """Decode a base64 .xlsx payload into paper-claim rows."""
    try:
        content = base64.b64decode(file_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("file_base64 is not valid base64") from e
    return [normalize_row(r, PAPER_CLAIM_FIELDS) for r in read_xlsx_rows(content)]
