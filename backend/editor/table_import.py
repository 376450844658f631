"""
Table import - turns uploaded CSV / Excel data and structured JSON tables into
LaTeX tables.
"""
import csv
import io
import logging
import re
from pathlib import PurePath
from typing import Any, List, Optional, Tuple

from openpyxl import load_workbook

from backend.rendering.latex_formatter import escape_latex
from backend.shared.errors import ValidationError
from backend.shared.models import SectionDraft, SectionType, TableData, TableOptions

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv": "csv", ".xlsx": "xlsx"}
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
MAX_TABLE_ROWS = 200
TABLE_POSITIONS = {"h", "t", "b", "p", "H", "ht", "htbp"}
LABEL_RE = re.compile(r"^[A-Za-z0-9:_.\-]+$")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_csv_rows(data: bytes) -> List[List[str]]:
    text = data.decode("utf-8-sig", errors="replace")
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    return [[cell.strip() for cell in row] for row in csv.reader(io.StringIO(text), dialect)]


def read_xlsx_rows(data: bytes) -> List[List[str]]:
    """Rows of the first worksheet as text."""
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"Unreadable Excel upload: {e}")
        raise ValidationError("Could not read Excel file")
    try:
        sheet = workbook.worksheets[0]
        return [[_cell_text(v) for v in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _normalise(rows: List[List[str]]) -> Tuple[List[str], List[List[str]]]:
    rows = [row for row in rows if any(cell for cell in row)]
    if len(rows) < 1:
        raise ValidationError("Uploaded file contains no data")

    width = max(len(row) for row in rows)
    # Trailing columns that are empty in every row are dropped
    while width > 1 and all(len(row) < width or not row[width - 1] for row in rows):
        width -= 1

    padded = [(row + [""] * width)[:width] for row in rows]
    header = [cell or f"Column {i + 1}" for i, cell in enumerate(padded[0])]
    return header, padded[1:]


def rows_to_latex(
    header: List[str],
    rows: List[List[str]],
    caption: Optional[str] = None,
    label: Optional[str] = None,
    style: str = "booktabs",
    alignment: Optional[str] = None,
    position: str = "h",
) -> str:
    align = alignment or "l" * len(header)
    lines = [f"\\begin{{table}}[{position}]", r"\centering"]
    if caption:
        lines.append(f"\\caption{{{escape_latex(caption)}}}")
    if label:
        lines.append(f"\\label{{{label}}}")

    if style == "fancy":
        lines += [
            r"\begin{tabular}{|" + "|".join(align) + "|}",
            r"\hline",
            " & ".join(f"\\textbf{{{escape_latex(h)}}}" for h in header) + r" \\",
            r"\hline",
        ]
        for row in rows:
            lines += [" & ".join(escape_latex(c) for c in row) + r" \\", r"\hline"]
        lines.append(r"\end{tabular}")
    elif style == "simple":
        lines += [
            r"\begin{tabular}{" + align + "}",
            " & ".join(escape_latex(h) for h in header) + r" \\",
            r"\hline",
        ]
        lines += [" & ".join(escape_latex(c) for c in row) + r" \\" for row in rows]
        lines.append(r"\end{tabular}")
    else:
        lines += [
            r"\begin{tabular}{" + align + "}",
            r"\toprule",
            " & ".join(escape_latex(h) for h in header) + r" \\",
            r"\midrule",
        ]
        lines += [" & ".join(escape_latex(c) for c in row) + r" \\" for row in rows]
        lines += [r"\bottomrule", r"\end{tabular}"]

    lines.append(r"\end{table}")
    return "\n".join(lines)


def build_table(data: TableData, options: TableOptions) -> str:
    """
    Render structured table data as a LaTeX table.

    Raises:
        ValidationError: a row or the alignment does not match the header width
    """
    width = len(data.headers)
    for index, row in enumerate(data.rows):
        if len(row) != width:
            raise ValidationError(
                f"Row {index + 1} has {len(row)} cells, expected {width}",
                details={"row": index + 1}
            )
    if options.alignment is not None and (
        len(options.alignment) != width or set(options.alignment) - set("lcr")
    ):
        raise ValidationError(f"Alignment must be {width} of the letters l, c or r")
    if options.position not in TABLE_POSITIONS:
        raise ValidationError(f"Unsupported table position: {options.position}")
    if data.label and not LABEL_RE.match(data.label):
        raise ValidationError("Table label may only contain letters, digits and : - _ .")

    rows = [[_cell_text(cell) for cell in row] for row in data.rows]
    return rows_to_latex(
        data.headers, rows,
        caption=data.caption,
        label=data.label,
        style=options.style,
        alignment=options.alignment,
        position=options.position
    )


def import_table(
    filename: str,
    data: bytes,
    title: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> SectionDraft:
    """
    Build a TABLE section draft from an uploaded spreadsheet.

    Raises:
        ValidationError: the upload is too large, empty, or not CSV/XLSX
    """
    if len(data) > max_bytes:
        raise ValidationError(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB",
            details={"size": len(data), "maxBytes": max_bytes}
        )

    extension = PurePath(filename or "").suffix.lower()
    kind = SUPPORTED_EXTENSIONS.get(extension)
    if kind is None:
        raise ValidationError(
            "Unsupported file type. Please upload a CSV or Excel (.xlsx) file",
            details={"supported": sorted(SUPPORTED_EXTENSIONS)}
        )
    if not data:
        raise ValidationError("Uploaded file is empty")

    raw_rows = read_csv_rows(data) if kind == "csv" else read_xlsx_rows(data)
    header, rows = _normalise(raw_rows)

    truncated = len(rows) > MAX_TABLE_ROWS
    if truncated:
        logger.info(f"Truncating imported table {filename} from {len(rows)} to {MAX_TABLE_ROWS} rows")
        rows = rows[:MAX_TABLE_ROWS]

    table_title = title or PurePath(filename).stem.replace("_", " ").strip() or "Imported Table"
    logger.info(f"Imported {kind} table {filename}: {len(header)} columns, {len(rows)} rows")

    return SectionDraft(
        title=table_title,
        content=rows_to_latex(header, rows, caption=table_title),
        type=SectionType.TABLE,
        metadata={
            "source": filename,
            "format": kind,
            "columns": header,
            "rowCount": len(rows),
            "truncated": truncated,
        }
    )
