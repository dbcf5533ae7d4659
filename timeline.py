"""Timeline context block: long-term temporal awareness from workspace files.

Filesystem reads only (IDENTITY.md, MEMORY.md, memory/YYYY-MM-DD.md), no API calls.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path

from i18n import Strings, t

BIRTH_DATE_PATTERNS = [
    re.compile(r"(?:born|geboren|active since|created|started)[:\s]+(\d{4}[-/]\d{1,2}[-/]\d{1,2})", re.IGNORECASE),
    re.compile(r"(?:born|geboren|active since|created|started)[:\s]+(\w+ \d{1,2},?\s*\d{4})", re.IGNORECASE),
]
DAILY_FILE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\.md$")


def format_date(day: date, strings: Strings) -> str:
    return f"{day.day}. {strings.months[day.month - 1]} {day.year}"


def _read_file_safe(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return None


def _parse_date(raw: str) -> date | None:
    raw = raw.replace("/", "-").replace(",", "")
    for fmt in ("%Y-%m-%d", "%B %d %Y", "%b %d %Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def extract_birth_date(text: str) -> date | None:
    """Find a "born: 2025-02-05" / "active since: March 3, 2025" style date."""
    for pattern in BIRTH_DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            parsed = _parse_date(re.sub(r"\s+", " ", match.group(1)).strip())
            if parsed:
                return parsed
    return None


def extract_week_summary(content: str, max_len: int = 80) -> str:
    lines = [line for line in content.split("\n") if line.strip() and not line.startswith("#")]
    text = re.sub(r"\s+", " ", ", ".join(lines[:5])).strip()
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"


def scan_memory_dates(memory_dir: Path) -> list[date]:
    try:
        names = [p.name for p in memory_dir.iterdir()]
    except OSError:
        return []
    dates = []
    for name in names:
        match = DAILY_FILE_RE.match(name)
        if match:
            try:
                dates.append(date.fromisoformat(match.group(1)))
            except ValueError:
                continue
    return sorted(dates)


def _workspace_creation_date(workspace: Path) -> date | None:
    try:
        stat = workspace.stat()
    except OSError:
        return None
    created = getattr(stat, "st_birthtime", stat.st_ctime)
    return datetime.fromtimestamp(created).date()


def _week_summary_line(memory_dir: Path, day: date) -> str:
    content = _read_file_safe(memory_dir / f"{day.isoformat()}.md")
    return extract_week_summary(content) if content else ""


def generate_timeline(workspace_path: Path | str, locale: str = "en", now: datetime | None = None) -> str:
    """Compact timeline block (~100-150 tokens), or "" when only today's date is known."""
    workspace = Path(workspace_path)
    today = (now or datetime.now()).date()
    strings = t(locale)
    lines: list[str] = []

    birth_date = None
    for name in ("IDENTITY.md", "MEMORY.md"):
        content = _read_file_safe(workspace / name)
        if content:
            birth_date = extract_birth_date(content)
            if birth_date:
                break
    if birth_date is None:
        birth_date = _workspace_creation_date(workspace)
    if birth_date is not None:
        lines.append(strings.timeline_active_since(format_date(birth_date, strings), (today - birth_date).days))

    memory_dir = workspace / "memory"
    memory_dates = scan_memory_dates(memory_dir)
    if memory_dates:
        lines.append(
            strings.timeline_memory_files(
                len(memory_dates),
                format_date(memory_dates[0], strings),
                format_date(memory_dates[-1], strings),
            )
        )
        this_week = [d for d in memory_dates if (today - d).days < 7]
        last_week = [d for d in memory_dates if 7 <= (today - d).days < 14]

        if this_week:
            summary = _week_summary_line(memory_dir, this_week[-1])
            if summary:
                lines.append(f"{strings.timeline_this_week(format_date(today, strings))}: {summary}")
        if last_week:
            summary = _week_summary_line(memory_dir, last_week[-1])
            if summary:
                label = strings.timeline_last_week(
                    format_date(last_week[0], strings), format_date(last_week[-1], strings)
                )
                lines.append(f"{label}: {summary}")

    lines.append(strings.timeline_current_date(strings.days[today.weekday()], format_date(today, strings)))

    if len(lines) <= 1:
        return ""
    return "<timeline>\n" + "\n".join(lines) + "\n</timeline>"
