"""Abstract workbook and its .xlsx rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Sequence

from openpyxl import Workbook as XlsxWorkbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class Sheet:
    """One named table. Columns fix the header order even when empty."""

    name: str
    columns: Sequence[str]
    rows: list[dict[str, Any]] = field(default_factory=list)

    def values(self) -> list[list[Any]]:
        return [["" if row.get(c) is None else row.get(c) for c in self.columns] for row in self.rows]


@dataclass
class Workbook:
    """Ordered collection of sheets."""

    sheets: list[Sheet] = field(default_factory=list)


def render_xlsx(workbook: Workbook) -> bytes:
    """Render a workbook to .xlsx bytes, sheets in the given order."""
    wb = XlsxWorkbook()
    wb.remove(wb.active)

    header_font = Font(bold=True)
    for sheet in workbook.sheets:
        # Excel sheet name max 31
        ws = wb.create_sheet(title=sheet.name[:31])
        ws.append(list(sheet.columns))
        for col in range(1, len(sheet.columns) + 1):
            cell = ws.cell(row=1, column=col)
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center", vertical="center")
        for values in sheet.values():
            ws.append(values)
        ws.freeze_panes = "A2"

        for col_idx, column in enumerate(sheet.columns, start=1):
            longest = max([len(str(column))] + [len(str(v[col_idx - 1])) for v in sheet.values()])
            ws.column_dimensions[get_column_letter(col_idx)].width = min(max(10, longest + 2), 55)

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()
