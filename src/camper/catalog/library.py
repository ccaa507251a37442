"""
Library view helpers: the All / Collection / Wishlist filter and sorting.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from camper.catalog.models import AcquisitionKind, LibraryEntry

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def filter_library(entries: Iterable[LibraryEntry], kind: Optional[AcquisitionKind] = None,
                   query: str = "", sort: str = "date") -> List[LibraryEntry]:
    """
    Filter and sort library entries for display.

    Args:
        entries: Collection and/or wishlist entries
        kind: Keep only this acquisition kind, None for all
        query: Case-insensitive substring matched against title and artist
        sort: "date" (newest first, undated last), "title" or "artist"

    Returns:
        New list of matching entries

    Raises:
        ValueError: for an unknown sort key
    """
    needle = (query or "").strip().casefold()
    selected = [
        entry for entry in entries
        if (kind is None or entry.kind is kind)
        and (not needle or needle in entry.title.casefold() or needle in entry.artist.casefold())
    ]

    if sort == "date":
        selected.sort(key=lambda entry: entry.acquired_at or _OLDEST, reverse=True)
    elif sort == "title":
        selected.sort(key=lambda entry: entry.title.casefold())
    elif sort == "artist":
        selected.sort(key=lambda entry: (entry.artist.casefold(), entry.title.casefold()))
    else:
        raise ValueError(f"Unknown library sort: {sort!r}")
    return selected
