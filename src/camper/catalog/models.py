"""
Domain entities shared by every browsing view and by the play queue.

Upstream records never reach the rest of the client directly: the parsers
turn them into these frozen dataclasses first.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, List, Optional, Tuple, TypeVar, Union

T = TypeVar('T')


class EntityKind(Enum):
    ALBUM = "a"
    TRACK = "t"
    ARTIST = "b"

    @classmethod
    def from_code(cls, code: Optional[str]) -> 'EntityKind':
        """Map an upstream item type ("a", "album", "t", "track", ...) to a kind. Non-strings map to ALBUM."""
        if not isinstance(code, str):
            return cls.ALBUM
        value = (code or "a").lower()
        if value in ("t", "track"):
            return cls.TRACK
        if value in ("b", "band", "artist"):
            return cls.ARTIST
        return cls.ALBUM


class AcquisitionKind(Enum):
    PURCHASED = "purchased"
    WISHLIST = "wishlist"


class OriginKind(Enum):
    ALBUM = "album"
    SEARCH = "search"
    DISCOVER = "discover"
    LIBRARY = "library"


@dataclass(frozen=True)
class Artist:
    id: str
    name: str
    profile_url: Optional[str] = None


@dataclass(frozen=True)
class Track:
    """
    One playable track of an album.

    The id is "<album id>#<position>", so the owning album can always be
    recovered from the track alone. stream_url is whatever the album page
    carried when it was fetched; playback always re-resolves it.
    """
    id: str
    title: str
    artist: str
    album_id: str
    album_title: str = ""
    position: int = 0
    duration: Optional[float] = None
    stream_url: Optional[str] = None
    url: Optional[str] = None
    art_url: Optional[str] = None

    @property
    def streamable(self) -> bool:
        return bool(self.stream_url)


@dataclass(frozen=True)
class Album:
    id: str
    title: str
    artist: str
    artist_id: Optional[str] = None
    art_url: Optional[str] = None
    genre: Optional[str] = None
    tags: Tuple[str, ...] = ()
    format: Optional[str] = None
    release_date: Optional[datetime] = None
    tracks: Tuple[Track, ...] = ()

    @property
    def url(self) -> str:
        return self.id

    def playable_tracks(self) -> List[Track]:
        return [track for track in self.tracks if track.streamable]


@dataclass(frozen=True)
class LibraryEntry:
    item: Union[Album, Track]
    kind: AcquisitionKind
    acquired_at: Optional[datetime] = None

    @property
    def title(self) -> str:
        return self.item.title

    @property
    def artist(self) -> str:
        return self.item.artist

    @property
    def album_id(self) -> str:
        if isinstance(self.item, Track):
            return self.item.album_id
        return self.item.id


@dataclass(frozen=True)
class SearchResult:
    """Thin search hit; resolved to an Album only when selected."""
    id: str
    title: str
    artist: str
    kind: EntityKind
    art_url: Optional[str] = None
    genre: Optional[str] = None


@dataclass(frozen=True)
class DiscoveryItem:
    """Thin discovery feed entry; resolved to an Album only when selected."""
    id: str
    title: str
    artist: str
    kind: EntityKind
    art_url: Optional[str] = None
    genre: Optional[str] = None


@dataclass(frozen=True)
class Origin:
    """Where a queued track was picked from. Display and "open in browser" only."""
    kind: OriginKind
    album_id: str
    label: str = ""


@dataclass(frozen=True, eq=False)
class QueueEntry:
    """
    A track placed in the play queue.

    Entries compare by identity: the same track queued twice is two entries.
    """
    track: Track
    origin: Origin

    @property
    def album_id(self) -> str:
        return self.origin.album_id

    @property
    def title(self) -> str:
        return self.track.title

    @classmethod
    def for_track(cls, track: Track, origin_kind: OriginKind = OriginKind.ALBUM,
                  label: str = "") -> 'QueueEntry':
        return cls(track=track, origin=Origin(kind=origin_kind, album_id=track.album_id, label=label))


def entries_for_album(album: Album, origin_kind: OriginKind = OriginKind.ALBUM,
                      label: str = None, playable_only: bool = True) -> List[QueueEntry]:
    """
    Turn an album's tracks into queue entries, in album order.

    Args:
        album: Resolved album
        origin_kind: Which view the album was opened from
        label: Display label of that context (defaults to the album title)
        playable_only: Skip tracks without a streamable file
    """
    tracks = album.playable_tracks() if playable_only else list(album.tracks)
    origin = Origin(kind=origin_kind, album_id=album.id, label=album.title if label is None else label)
    return [QueueEntry(track=track, origin=origin) for track in tracks]


@dataclass(frozen=True)
class FanInfo:
    fan_id: int
    username: str = ""


@dataclass(frozen=True)
class Page(Generic[T]):
    """
    One fetched page of a paged query.

    Attributes:
        items: Well-formed entities, in upstream order
        cursor: The cursor this page was fetched with
        next_cursor: Cursor of the following page, None at the end
        skipped: Number of malformed upstream records dropped from this page
    """
    items: Tuple[T, ...] = ()
    cursor: Any = None
    next_cursor: Any = None
    skipped: int = 0

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    def __len__(self) -> int:
        return len(self.items)
