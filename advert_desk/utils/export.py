import csv
import io
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from advert_desk.config import Settings
from advert_desk.db.enums import MarkFilter
from advert_desk.db.schemas.submission import SubmissionRead

CSV_FILENAME = "y9_canva_submissions.csv"
CSV_HEADER = (
    "id", "studentName", "studentClass", "studentEmail", "category", "brand", "canvaUrl", "notes",
    "createdAt", "markScore", "markFeedback", "markedBy", "markedAt",
)

CATEGORY_LABELS = {
    "food": "Food chain",
    "soft_drink": "Soft drink",
    "trainers": "Trainers",
}

_whitespace = re.compile(r"\s+")


def category_label(value: Optional[str]) -> str:
    if value is None:
        return ""
    return CATEGORY_LABELS.get(str(value), str(value))


def squash(text: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _whitespace.sub(" ", text or "").strip()


def _display_zone() -> ZoneInfo | timezone:
    try:
        return ZoneInfo(Settings().display_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def format_timestamp(ts: Optional[datetime]) -> str:
    """``dd/mm/YYYY, HH:MM:SS`` in the display timezone; naive values are UTC."""
    if ts is None:
        return ""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(_display_zone()).strftime("%d/%m/%Y, %H:%M:%S")


def filter_rows(
    rows: Iterable[SubmissionRead],
    class_filter: str = "",
    mark_filter: MarkFilter | str = MarkFilter.ALL,
) -> List[SubmissionRead]:
    """
    Apply the board filters to ``rows`` without touching the input.

    ``class_filter`` is an exact class match, empty for all classes. ``mark_filter``
    keeps records with a numeric score (``marked``), without one (``unmarked``)
    or everything (empty).
    """
    wanted_mark = MarkFilter(mark_filter or "")
    result = []
    for row in rows:
        if class_filter and str(row.student_class) != class_filter:
            continue
        if wanted_mark == MarkFilter.MARKED and not row.is_marked:
            continue
        if wanted_mark == MarkFilter.UNMARKED and row.is_marked:
            continue
        result.append(row)
    return result


def _csv_values(row: SubmissionRead) -> list[str]:
    mark = row.mark
    return [
        row.id,
        row.student_name or "",
        str(row.student_class or ""),
        row.student_email or "",
        str(row.category or ""),
        row.brand or "",
        row.canva_url or "",
        squash(row.notes),
        format_timestamp(row.created_at),
        str(mark.score) if mark is not None else "",
        squash(mark.feedback) if mark is not None else "",
        mark.marked_by if mark is not None else "",
        format_timestamp(mark.marked_at) if mark is not None else "",
    ]


def build_csv(rows: Iterable[SubmissionRead]) -> str:
    """Header line plus one fully quoted line per row, ``\\n`` separated."""
    buf = io.StringIO()
    buf.write(",".join(CSV_HEADER) + "\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(_csv_values(row))
    return buf.getvalue()


def build_summary(row: SubmissionRead) -> str:
    lines = [
        f"Name: {row.student_name or ''}",
        f"Class: {row.student_class or ''}",
        f"Category: {category_label(row.category)}",
        f"Brand/Product: {row.brand or ''}",
        f"Canva: {row.canva_url or ''}",
        f"Mark: {row.mark.score}/20" if row.mark is not None else "Mark: (not marked yet)",
    ]
    if row.mark is not None and row.mark.feedback:
        lines.append(f"Feedback: {row.mark.feedback}")
    return "\n".join(lines)
