"""Theme, color definitions, QSS stylesheet, and display formatting utilities."""

from __future__ import annotations

from datetime import UTC, datetime

from projdash.models.projects import ProjectStatus

# ── Color palette: light theme with blue accents ──

COLORS = {
    "primary": "#137FEC",
    "primary_light": "#E7F2FD",
    "success": "#10B981",
    "bg": "#FFFFFF",
    "sidebar_bg": "#F1F5F9",
    "panel_bg": "#F8FAFC",
    "border": "#E2E8F0",
    "text": "#0F172A",
    "text_muted": "#64748B",
    "error": "#DC2626",
    "warning": "#F59E0B",
    "status_in_progress": "#2563EB",
    "status_completed": "#059669",
    "status_upcoming": "#D97706",
    "status_pending": "#64748B",
}

CHART_COLORS = [
    "#137FEC",
    "#10B981",
    "#FBBF24",
    "#A855F7",
    "#EF4444",
    "#14B8A6",
    "#F97316",
    "#64748B",
]

# ── Fonts ──

FONT_FAMILY = "Inter, -apple-system, 'Segoe UI', Roboto, 'Helvetica Neue', sans-serif"

# ── QSS Stylesheet ──


def build_stylesheet() -> str:
    """Build the application-wide QSS stylesheet."""
    c = COLORS
    return f"""
QWidget {{
    font-family: {FONT_FAMILY};
    font-size: 13px;
    color: {c["text"]};
    background-color: {c["bg"]};
}}
QMainWindow {{
    background-color: {c["panel_bg"]};
}}
QStatusBar {{
    background-color: {c["panel_bg"]};
    border-top: 1px solid {c["border"]};
    font-size: 12px;
    color: {c["text_muted"]};
    padding: 4px 12px;
}}
QStatusBar[error="true"] {{
    color: {c["error"]};
}}
QTableView {{
    border: 1px solid {c["border"]};
    border-radius: 8px;
    gridline-color: {c["border"]};
    selection-background-color: {c["primary_light"]};
    selection-color: {c["text"]};
}}
QHeaderView::section {{
    background-color: {c["panel_bg"]};
    color: {c["text_muted"]};
    font-size: 11px;
    font-weight: bold;
    padding: 8px;
    border: none;
    border-bottom: 1px solid {c["border"]};
}}
QLineEdit, QTextEdit, QPlainTextEdit {{
    border: 1px solid {c["border"]};
    border-radius: 6px;
    padding: 8px 12px;
    background-color: {c["panel_bg"]};
}}
QLineEdit:focus, QTextEdit:focus, QPlainTextEdit:focus {{
    border-color: {c["primary"]};
}}
QPushButton {{
    border: 1px solid {c["border"]};
    border-radius: 6px;
    padding: 6px 14px;
    background-color: {c["bg"]};
}}
QPushButton:hover {{
    background-color: {c["panel_bg"]};
}}
QPushButton[primary="true"] {{
    background-color: {c["primary"]};
    border-color: {c["primary"]};
    color: white;
    font-weight: bold;
}}
QPushButton[danger="true"] {{
    color: {c["error"]};
}}
QPushButton:disabled {{
    color: {c["text_muted"]};
}}
QComboBox {{
    border: 1px solid {c["border"]};
    border-radius: 6px;
    padding: 5px 10px;
}}
QLabel {{
    background-color: transparent;
}}
QLabel[heading="true"] {{
    font-size: 20px;
    font-weight: bold;
}}
QLabel[muted="true"] {{
    color: {c["text_muted"]};
}}
QTabBar::tab {{
    padding: 8px 18px;
    border: none;
    border-bottom: 2px solid transparent;
    color: {c["text_muted"]};
}}
QTabBar::tab:selected {{
    color: {c["primary"]};
    border-bottom-color: {c["primary"]};
}}
QDialog {{
    background-color: {c["bg"]};
}}
"""


# ── Format helpers ──


def _parse_iso_datetime(iso_str: str) -> datetime | None:
    """Parse common ISO datetime formats and normalize to UTC."""
    value = iso_str.strip()
    if not value:
        return None

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    if " " in value and "T" not in value:
        value = value.replace(" ", "T")

    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        try:
            dt = datetime.fromisoformat(value[:19])
        except ValueError:
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_date(iso_str: str) -> str:
    """Format an ISO timestamp as the list's Created At value, e.g. "Oct 24, 2023"."""
    dt = _parse_iso_datetime(iso_str) if iso_str else None
    if dt is None:
        return iso_str
    return dt.strftime("%b %d, %Y")


def format_relative_time(iso_str: str) -> str:
    """Format an ISO datetime relative to now ("just now", "2 days ago")."""
    if not iso_str:
        return ""
    dt = _parse_iso_datetime(iso_str)
    if dt is None:
        return iso_str

    seconds = int((datetime.now(tz=UTC) - dt).total_seconds())
    if seconds < 60:
        return "just now"
    for unit, size in (("week", 604_800), ("day", 86_400), ("hour", 3_600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            if unit == "week" and count > 8:
                return format_date(iso_str)
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"


def format_currency(amount: float) -> str:
    """Format a dollar amount with thousands separators."""
    if amount == int(amount):
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"


def format_percent(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def format_file_size(size: int) -> str:
    """Human readable size in binary units, e.g. "2.4 MB"."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    for unit in ("Bytes", "KB", "MB"):
        if value < 1024:
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{round(value, 2):g} GB"


def file_icon(file_type: str) -> tuple[str, str]:
    """Glyph and color for a file extension."""
    match file_type.strip().lower().lstrip("."):
        case "pdf":
            return "PDF", "#DC2626"
        case "doc" | "docx":
            return "DOC", "#2563EB"
        case "xls" | "xlsx":
            return "XLS", "#16A34A"
        case "ppt" | "pptx":
            return "PPT", "#EA580C"
        case "jpg" | "jpeg" | "png" | "gif" | "webp":
            return "IMG", "#9333EA"
        case "zip" | "rar" | "7z":
            return "ZIP", "#CA8A04"
        case _:
            return "FILE", "#4B5563"


def document_type_label(file_type: str) -> str:
    """Describe a file extension for the Documents table."""
    normalized = file_type.strip().lower().lstrip(".")
    match normalized:
        case "pdf":
            return "PDF Document"
        case "doc" | "docx":
            return "Word Document"
        case "xls" | "xlsx":
            return "Excel Spreadsheet"
        case "ppt" | "pptx":
            return "PowerPoint Presentation"
        case "jpg" | "jpeg" | "png" | "gif":
            return "Image"
        case "txt":
            return "Text File"
        case "zip" | "rar" | "7z":
            return "Archive"
        case "":
            return "File"
        case _:
            return f"{normalized.upper()} File"


def status_color(status: ProjectStatus | str) -> str:
    """Badge color for a project status."""
    match str(status):
        case ProjectStatus.IN_PROGRESS:
            return COLORS["status_in_progress"]
        case ProjectStatus.COMPLETED:
            return COLORS["status_completed"]
        case ProjectStatus.UPCOMING:
            return COLORS["status_upcoming"]
        case _:
            return COLORS["status_pending"]
