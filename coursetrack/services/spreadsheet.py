"""
Spreadsheet encoding for export and import.

Rows are plain ``{header: text}`` mappings; this module only moves them in
and out of xlsx (openpyxl) and csv bytes.
"""

import csv
import io
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from coursetrack.utils.errors import ValidationError

logger = logging.getLogger(__name__)

Row = Dict[str, str]

INSTRUCTIONS_SHEET = "Instructions"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"


def cell_text(value: Any) -> str:
    """Normalise a cell value to the text the reconciler expects."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _drop_trailing_blanks(rows: List[Row]) -> List[Row]:
    while rows and not any(rows[-1].values()):
        rows.pop()
    return rows


def write_xlsx(
    rows: Sequence[Row],
    headers: Sequence[str],
    sheet_name: str = "Courses",
    instructions: Optional[Sequence[str]] = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append(list(headers))
    header_font = Font(bold=True)
    for col_index, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_index)
        cell.font = header_font
        cell.alignment = Alignment(horizontal="left", vertical="center")
        ws.column_dimensions[get_column_letter(col_index)].width = max(12, len(header) + 4)
    for row in rows:
        ws.append([row.get(header, "") or None for header in headers])
    ws.freeze_panes = "A2"

    if instructions:
        notes = wb.create_sheet(INSTRUCTIONS_SHEET)
        for line in instructions:
            notes.append([line])
        notes["A1"].font = Font(bold=True)
        notes.column_dimensions["A"].width = 90

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def read_xlsx(data: bytes) -> List[Row]:
    """Rows of the first sheet not named "Instructions", keyed by header.

    Blank rows between data rows are kept (as all-empty rows) so that the
    n-th returned row is always sheet row n + 2; trailing blanks are dropped.
    """
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise ValidationError("file", f"Could not read workbook: {exc}") from exc
    try:
        names = [name for name in wb.sheetnames if name != INSTRUCTIONS_SHEET]
        ws = wb[names[0] if names else wb.sheetnames[0]]
        values = ws.iter_rows(values_only=True)
        header_row = next(values, None)
        if header_row is None:
            return []
        headers = [cell_text(h) for h in header_row]
        rows = []
        for raw in values:
            cells = [cell_text(v) for v in raw]
            cells += [""] * (len(headers) - len(cells))
            rows.append({h: c for h, c in zip(headers, cells) if h})
        rows = _drop_trailing_blanks(rows)
        logger.debug("Read %d row(s) from sheet %r", len(rows), ws.title)
        return rows
    finally:
        wb.close()


def write_csv(rows: Sequence[Row], headers: Sequence[str]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(headers), extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({h: row.get(h, "") for h in headers})
    return buffer.getvalue().encode("utf-8-sig")


def read_csv(data: bytes) -> List[Row]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("file", "CSV file must be UTF-8 encoded") from exc
    # One row per record, blank lines included
    reader = csv.reader(io.StringIO(text))
    header_row = next(reader, None)
    if header_row is None:
        return []
    headers = [h.strip() for h in header_row]
    rows = []
    for raw in reader:
        cells = [cell_text(v) for v in raw]
        cells += [""] * (len(headers) - len(cells))
        rows.append({h: c for h, c in zip(headers, cells) if h})
    return _drop_trailing_blanks(rows)


def read_table(filename: str, data: bytes) -> List[Row]:
    """Dispatch on the upload's extension."""
    lowered = (filename or "").lower()
    if lowered.endswith(".csv"):
        return read_csv(data)
    if lowered.endswith((".xlsx", ".xlsm")):
        return read_xlsx(data)
    raise ValidationError("file", "Unsupported file type. Upload an .xlsx or .csv file")
