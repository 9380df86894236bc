import re
from datetime import datetime


def parse_timestamp(value):
    """Parse a timestamp string in ISO or common formats. Returns datetime or None if invalid."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Try parsing as ISO format
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d %H:%M:%S", "%a, %d %b %Y %H:%M:%S GMT", "%Y/%m/%d %H:%M:%S"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def format_clock(value):
    """Render a timestamp as a wall-clock time, falling back to the raw text"""
    dt = parse_timestamp(value)
    if dt is None:
        return value or ""
    return dt.strftime("%H:%M:%S")


def slugify(name):
    """Turn a display name into a context id"""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
