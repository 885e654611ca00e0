import csv
import io
import logging

import openpyxl
import pypdf
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MONTH_ABBRS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]


class ParsedFile(BaseModel):
    success: bool
    content: str = ""
    file_name: str
    file_type: str
    sheet_names: list[str] = Field(default_factory=list)
    row_count: int = 0
    error: str | None = None


def _sheet_to_csv(sheet) -> tuple[str, int]:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    rows = 0
    for row in sheet.iter_rows(values_only=True):
        if all(cell is None or str(cell).strip() == "" for cell in row):
            continue
        writer.writerow(["" if cell is None else cell for cell in row])
        rows += 1
    return buffer.getvalue(), rows


def _parse_excel(content: bytes, file_name: str) -> ParsedFile:
    workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        parts: list[str] = []
        total_rows = 0
        for sheet_name in workbook.sheetnames:
            data, rows = _sheet_to_csv(workbook[sheet_name])
            total_rows += rows
            parts.append(f"=== Sheet: {sheet_name} ===\n{data}")
        return ParsedFile(
            success=True,
            content="\n".join(parts).strip(),
            file_name=file_name,
            file_type="excel",
            sheet_names=list(workbook.sheetnames),
            row_count=total_rows,
        )
    finally:
        workbook.close()


def _parse_pdf(content: bytes, file_name: str) -> ParsedFile:
    pdf_reader = pypdf.PdfReader(io.BytesIO(content))
    text = ""
    for page in pdf_reader.pages:
        page_text = page.extract_text()
        if page_text:
            text += page_text + "\n"
    return ParsedFile(
        success=True,
        content=text,
        file_name=file_name,
        file_type="pdf",
        row_count=len(pdf_reader.pages),
    )


def _parse_text(content: bytes, file_name: str, file_type: str) -> ParsedFile:
    text = content.decode("utf-8", errors="replace")
    return ParsedFile(
        success=True,
        content=text,
        file_name=file_name,
        file_type=file_type,
        row_count=len([line for line in text.splitlines() if line.strip()]),
    )


def parse_uploaded_file(content: bytes, file_name: str) -> ParsedFile:
    """Turn a stored upload into plain text the extraction model can read.

    Spreadsheets are rendered sheet by sheet as CSV, PDFs page by page.
    Parse failures are reported on the result instead of raised so one bad
    upload does not abort generation for the remaining files.
    """
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    try:
        if ext in ("xlsx", "xls"):
            return _parse_excel(content, file_name)
        if ext == "csv":
            return _parse_text(content, file_name, "csv")
        if ext == "pdf":
            return _parse_pdf(content, file_name)
        if ext == "txt":
            return _parse_text(content, file_name, "text")
    except Exception as e:
        logger.warning("Failed to parse %s: %s", file_name, e)
        return ParsedFile(
            success=False,
            file_name=file_name,
            file_type=ext or "unknown",
            error=f"Parse failed: {e}",
        )
    return ParsedFile(
        success=False,
        content=f"[Unsupported file type: {ext or 'unknown'}]",
        file_name=file_name,
        file_type=ext or "unknown",
        error=f"Unsupported: .{ext}",
    )


def validate_t12_month(content: str, month: int, year: int) -> tuple[bool, str]:
    lower = (content or "").lower()
    candidates = [
        MONTH_ABBRS[month - 1],
        MONTH_NAMES[month - 1],
        f"{month}/{year}",
        f"{month:02d}/{year}",
        f"{year}-{month:02d}",
    ]
    if any(candidate in lower for candidate in candidates):
        return True, "OK"
    return (
        False,
        f"Your T-12 doesn't appear to include {MONTH_NAMES[month - 1].capitalize()} {year} data. "
        "Please upload a T-12 that covers this period.",
    )
