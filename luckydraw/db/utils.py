from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Anchor a relative SQLite URL (``sqlite[+driver]:///./file.db``) at
    ``project_root``.

    URLs for other backends, absolute paths and ``:memory:`` are returned as is.
    """
    scheme, sep, path = url.partition(":///")
    if not sep or not scheme.startswith("sqlite") or not path.startswith("./"):
        return url
    return f"{scheme}:///{(project_root / path[2:]).resolve()}"


def dt_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO 8601 string in UTC, or return None.

    Naive datetimes (SQLite drops tzinfo on round trip) are treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
