"""lms_agent/roster.py

Student roster extraction for the assistant's upload endpoint.

Structured files (CSV, Excel) are read row by row with flexible,
case-insensitive header matching. PDFs are flattened to text and scanned for
``<name> <email>`` lines. The parsed rows are returned to the client, which
feeds them back to the assistant as a ``createUser`` request.
"""

from __future__ import annotations

# Standard Library
import csv
import io
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

# Third-Party Libraries
import pdfplumber
from openpyxl import load_workbook

# Local Modules
from lms_agent.errors import RosterParseError

logger = logging.getLogger(__name__)

CSV_TYPES = frozenset({"text/csv", "application/csv"})
# openpyxl reads only OOXML workbooks, so legacy .xls is not accepted.
EXCEL_TYPES = frozenset({"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"})
PDF_TYPES = frozenset({"application/pdf"})
ALLOWED_TYPES = CSV_TYPES | EXCEL_TYPES | PDF_TYPES

_EMAIL_SEARCH = re.compile(r"[\w.+-]+@[\w.-]+\.\w+")
_EMAIL_FULL = re.compile(r"^[\w.+-]+@[\w.-]+\.\w+$")
_NAME_NOISE = re.compile(r"[^a-zA-Z\s]")


@dataclass
class RosterResult:
    success: bool
    students: list[dict[str, str]] = field(default_factory=list)
    raw_text: str | None = None
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.students)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": self.success,
            "students": self.students,
            "rawText": self.raw_text,
            "count": self.count,
        }
        if self.error:
            body["error"] = self.error
        return body


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_FULL.match(value))


def normalize_rows(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Map loosely named columns onto ``name`` / ``email`` / ``section``.

    Rows without a name or a well-formed email are dropped.
    """
    students: list[dict[str, str]] = []
    for row in rows:
        student: dict[str, str] = {}
        for key, value in row.items():
            if key is None or value is None:
                continue
            lower = str(key).strip().lower()
            text = str(value).strip()
            if "email" in lower or "e-mail" in lower:
                student["email"] = text
            elif "section" in lower:
                student["section"] = text
            elif "name" in lower:
                student["name"] = text

        if student.get("name") and is_valid_email(student.get("email", "")):
            students.append(student)
    return students


def students_from_text(text: str) -> list[dict[str, str]]:
    """Pull ``{name, email}`` pairs out of free text, one per line."""
    students: list[dict[str, str]] = []
    for line in text.splitlines():
        match = _EMAIL_SEARCH.search(line)
        if not match:
            continue
        name = _NAME_NOISE.sub("", line[: match.start()]).strip()
        name = " ".join(name.split())
        if name:
            students.append({"name": name, "email": match.group(0)})
    return students


def _read_csv(data: bytes) -> list[dict[str, str]]:
    text = data.decode("utf-8-sig", errors="replace")
    return normalize_rows(csv.DictReader(io.StringIO(text)))


def _read_excel(data: bytes) -> list[dict[str, str]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise RosterParseError(f"Excel Parse Error: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []
        columns = [str(cell) if cell is not None else None for cell in header]
        records = (dict(zip(columns, values)) for values in rows)
        return normalize_rows(records)
    finally:
        workbook.close()


def _read_pdf(data: bytes) -> str:
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:
        raise RosterParseError(f"PDF Parse Error: {exc}") from exc
    return "\n".join(pages)


def parse_roster(data: bytes, content_type: str) -> RosterResult:
    """Extract students from an uploaded file.

    Args:
        data: Raw file bytes.
        content_type: MIME type reported by the client.

    Returns:
        A :class:`RosterResult`. Parse failures are reported with
        ``success=False`` rather than raised.
    """
    mime = content_type.split(";", 1)[0].strip().lower()
    try:
        if mime in CSV_TYPES:
            return RosterResult(success=True, students=_read_csv(data))
        if mime in EXCEL_TYPES:
            return RosterResult(success=True, students=_read_excel(data))
        if mime in PDF_TYPES:
            text = _read_pdf(data)
            return RosterResult(success=True, students=students_from_text(text), raw_text=text)
        raise RosterParseError(f"Unsupported file type: {mime}")
    except RosterParseError as exc:
        logger.warning("Roster parse failed: %s", exc)
        return RosterResult(success=False, error=str(exc))
