"""
Upstream record parsers.

Every parser takes one raw record and either returns a domain entity or
raises ParseError. parse_records() applies a parser to a whole page and
drops (and logs) the records that fail, so one malformed record never costs
the rest of the page.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from bs4 import BeautifulSoup

from camper.catalog.constants import CATALOG_DATE_FORMAT, art_url_thumb
from camper.catalog.models import (
    AcquisitionKind, Album, DiscoveryItem, EntityKind, LibraryEntry, SearchResult, Track,
)
from camper.utils.exceptions import ParseError
from camper.utils.url_utils import URLUtils

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _require_mapping(record: Any, what: str) -> dict:
    if not isinstance(record, dict):
        raise ParseError(f"{what} is not an object", record=record)
    return record


def _require_str(record: dict, key: str, what: str) -> str:
    value = record.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"{what} without '{key}'", record=record)
    return value.strip()


def _optional_str(record: dict, key: str) -> Optional[str]:
    value = record.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_int(record: dict, key: str) -> Optional[int]:
    value = record.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _kind(record: dict, key: str, what: str) -> EntityKind:
    value = record.get(key)
    if value is not None and not isinstance(value, str):
        raise ParseError(f"{what} with a non-text '{key}'", record=record)
    return EntityKind.from_code(value)


def _optional_id(record: dict, key: str) -> Optional[str]:
    value = _optional_int(record, key)
    return str(value) if value is not None else None


def _art(record: dict, key: str) -> Optional[str]:
    art_id = _optional_int(record, key)
    return art_url_thumb(art_id) if art_id else None


def parse_catalog_date(value: Any) -> Optional[datetime]:
    """Parse "07 Jun 2021 17:23:45 GMT" into an aware UTC datetime, None if unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.strptime(value.strip(), CATALOG_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug(f"[CATALOG] Unparseable date {value!r}")
        return None


def parse_records(records: Any, parser: Callable[[Any], T], context: str = "page") -> Tuple[List[T], int]:
    """
    Apply a record parser to every record of a page.

    Args:
        records: The upstream list of records
        parser: Function mapping one record to an entity or raising ParseError
        context: Label used in log lines

    Returns:
        Tuple of (well-formed entities in upstream order, number skipped)

    Raises:
        ParseError: if the page itself is not a list
    """
    if records is None:
        return [], 0
    if not isinstance(records, list):
        raise ParseError(f"{context}: expected a list of records, got {type(records).__name__}")

    items = []
    skipped = 0
    for index, record in enumerate(records):
        try:
            items.append(parser(record))
        except ParseError as e:
            skipped += 1
            logger.warning(f"[CATALOG] Skipping malformed {context} record #{index}: {e.message}")
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            # Field of an unexpected shape that no parser check caught
            skipped += 1
            logger.warning(f"[CATALOG] Skipping malformed {context} record #{index}: {type(e).__name__}: {e}")
    if skipped:
        logger.info(f"[CATALOG] {context}: kept {len(items)} record(s), skipped {skipped}")
    return items, skipped


def parse_search_result(record: Any) -> SearchResult:
    """One autocomplete hit."""
    record = _require_mapping(record, "search result")
    kind = _kind(record, 'type', "search result")
    title = _require_str(record, 'name', "search result")

    if kind is EntityKind.ARTIST:
        url = _optional_str(record, 'item_url_root') or _optional_str(record, 'item_url_path')
        artist = title
    else:
        url = _optional_str(record, 'item_url_path')
        artist = _optional_str(record, 'band_name') or ""
    if not url:
        raise ParseError("search result without an item URL", record=record)

    return SearchResult(
        id=url,
        title=title,
        artist=artist,
        kind=kind,
        art_url=_art(record, 'art_id') or _optional_str(record, 'img'),
        genre=_optional_str(record, 'genre'),
    )


def parse_discovery_item(record: Any) -> DiscoveryItem:
    """One discovery feed entry."""
    record = _require_mapping(record, "discovery item")
    title = _require_str(record, 'primary_text', "discovery item")

    hints = record.get('url_hints')
    if not isinstance(hints, dict):
        raise ParseError("discovery item without url_hints", record=record)
    subdomain = _require_str(hints, 'subdomain', "discovery url_hints")
    slug = _require_str(hints, 'slug', "discovery url_hints")
    item_type = _optional_str(hints, 'item_type') or 'a'

    return DiscoveryItem(
        id=URLUtils.item_url(subdomain, item_type, slug),
        title=title,
        artist=_optional_str(record, 'secondary_text') or "",
        kind=EntityKind.from_code(item_type),
        art_url=_art(record, 'art_id'),
        genre=_optional_str(record, 'genre_text'),
    )


def parse_library_entry(record: Any, kind: AcquisitionKind) -> LibraryEntry:
    """One collection or wishlist item."""
    record = _require_mapping(record, "library item")
    title = _require_str(record, 'item_title', "library item")
    url = _require_str(record, 'item_url', "library item")
    artist = _optional_str(record, 'band_name') or ""
    art = _art(record, 'item_art_id')

    if _kind(record, 'item_type', "library item") is EntityKind.TRACK:
        item = Track(
            id=URLUtils.track_id(url, 1),
            title=title,
            artist=artist,
            album_id=url,
            album_title=_optional_str(record, 'album_title') or title,
            position=1,
            url=url,
            art_url=art,
        )
    else:
        item = Album(
            id=url,
            title=title,
            artist=artist,
            artist_id=_optional_id(record, 'band_id'),
            art_url=art,
        )

    stamp_key = 'purchased' if kind is AcquisitionKind.PURCHASED else 'added'
    return LibraryEntry(item=item, kind=kind, acquired_at=parse_catalog_date(record.get(stamp_key)))


def _parse_duration(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def _parse_track(record: Any, index: int, album_id: str, album_title: str,
                 album_artist: str, art: Optional[str]) -> Track:
    record = _require_mapping(record, "track")
    title = _require_str(record, 'title', "track")
    position = _optional_int(record, 'track_num') or index + 1

    stream_url = None
    files = record.get('file')
    if isinstance(files, dict):
        stream_url = _optional_str(files, 'mp3-128')

    return Track(
        id=URLUtils.track_id(album_id, position),
        title=title,
        artist=_optional_str(record, 'artist') or album_artist,
        album_id=album_id,
        album_title=album_title,
        position=position,
        duration=_parse_duration(record.get('duration')),
        stream_url=stream_url,
        url=URLUtils.absolute(album_id, _optional_str(record, 'title_link')),
        art_url=art,
    )


def extract_tralbum(soup: BeautifulSoup) -> dict:
    """
    Pull the embedded album JSON out of a parsed album/track page.

    Raises:
        ParseError: if the page carries no usable data-tralbum payload
    """
    script = soup.select_one('script[data-tralbum]')
    if script is None:
        raise ParseError("No tralbum data found")
    try:
        data = json.loads(script['data-tralbum'])
    except ValueError as e:
        raise ParseError(f"Invalid tralbum JSON: {e}") from e
    return _require_mapping(data, "tralbum data")


def parse_album_page(html: str, album_id: str) -> Album:
    """
    Build an Album, with its ordered tracks, from an album or track page.

    Malformed track records are skipped; a page without album data raises.

    Args:
        html: Page HTML
        album_id: Canonical page URL the HTML came from
    """
    soup = BeautifulSoup(html or "", 'html.parser')
    data = extract_tralbum(soup)
    current = data.get('current')
    if not isinstance(current, dict):
        raise ParseError("No current album data", record=data)

    title = _optional_str(current, 'title')
    if not title:
        raise ParseError("Album without a title", record=current)
    artist = _optional_str(current, 'artist') or _optional_str(data, 'artist') or ""
    art_id = _optional_int(data, 'art_id')
    art = art_url_thumb(art_id) if art_id else None

    trackinfo = data.get('trackinfo')
    if isinstance(trackinfo, list):
        # Keep list order around for tracks without a track_num
        trackinfo = list(enumerate(trackinfo))
    tracks, _ = parse_records(
        trackinfo,
        lambda pair: _parse_track(pair[1], pair[0], album_id, title, artist, art),
        context=f"tracks of {album_id}",
    )

    tags = tuple(text for text in (tag.get_text(strip=True) for tag in soup.select('a.tag')) if text)

    packages = data.get('packages')
    album_format = "Digital"
    if isinstance(packages, list) and packages and isinstance(packages[0], dict):
        album_format = _optional_str(packages[0], 'type_name') or album_format

    return Album(
        id=album_id,
        title=title,
        artist=artist,
        artist_id=_optional_id(current, 'band_id') or _optional_id(data, 'band_id'),
        art_url=art,
        genre=tags[0] if tags else None,
        tags=tags,
        format=album_format,
        release_date=parse_catalog_date(current.get('release_date') or data.get('album_release_date')),
        tracks=tuple(tracks),
    )
