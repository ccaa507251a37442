import re
from typing import Optional, Tuple
from urllib.parse import urljoin, urlparse

from camper.catalog.models import (
    Album, Artist, DiscoveryItem, LibraryEntry, QueueEntry, SearchResult, Track,
)


class URLUtils:
    """Utility class for catalog URLs and identifiers."""

    # Catalog item pages
    CATALOG_PATTERNS = [
        r'^https?://[\w-]+\.bandcamp\.com/(?:album|track)/[\w-]+/?(?:\?.*)?$',  # Artist subdomain pages
        r'^https?://(?!www\.)[\w.-]+\.[a-z]{2,}/(?:album|track)/[\w-]+/?(?:\?.*)?$',  # Custom artist domains
    ]

    ITEM_TYPE_PATHS = {
        'a': 'album',
        't': 'track',
    }

    @classmethod
    def is_catalog_url(cls, url: str) -> bool:
        """
        Check if a URL points at an album or track page.

        Args:
            url: The URL to check

        Returns:
            bool: True if the URL is an album/track page
        """
        return any(re.match(pattern, url or '') for pattern in cls.CATALOG_PATTERNS)

    @classmethod
    def item_url(cls, subdomain: str, item_type: Optional[str], slug: str) -> str:
        """
        Build an item page URL from discovery url hints.

        Args:
            subdomain: Artist subdomain
            item_type: "a" or "t" (anything else is treated as an album)
            slug: Item slug

        Returns:
            str: Canonical item page URL
        """
        type_path = cls.ITEM_TYPE_PATHS.get(item_type or 'a', 'album')
        return f"https://{subdomain}.bandcamp.com/{type_path}/{slug}"

    @classmethod
    def absolute(cls, base: str, link: Optional[str]) -> Optional[str]:
        """Resolve a page-relative link ("/track/slug") against its page URL."""
        if not link:
            return None
        return urljoin(base, link)

    @classmethod
    def track_id(cls, album_id: str, position: int) -> str:
        return f"{album_id}#{position}"

    @classmethod
    def split_track_id(cls, track_id: str) -> Tuple[str, int]:
        """
        Split a track id into its album id and position.

        Args:
            track_id: "<album url>#<position>"

        Returns:
            Tuple of (album id, position)

        Raises:
            ValueError: if the id does not carry a numeric position
        """
        album_id, sep, position = (track_id or '').rpartition('#')
        if not sep or not album_id or not position.isdigit():
            raise ValueError(f"Not a track id: {track_id!r}")
        return album_id, int(position)

    @classmethod
    def browser_url(cls, entity) -> str:
        """
        Map a catalog entity to the page an external browser should open.

        Args:
            entity: Album, Track, Artist, LibraryEntry, QueueEntry,
                SearchResult or DiscoveryItem

        Returns:
            str: Page URL
        """
        if isinstance(entity, QueueEntry):
            return entity.track.url or entity.origin.album_id
        if isinstance(entity, LibraryEntry):
            return cls.browser_url(entity.item)
        if isinstance(entity, Track):
            return entity.url or entity.album_id
        if isinstance(entity, Artist):
            if entity.profile_url:
                return entity.profile_url
            return entity.id
        if isinstance(entity, (Album, SearchResult, DiscoveryItem)):
            return entity.id
        raise TypeError(f"No browser URL for {type(entity).__name__}")

    @classmethod
    def artist_root(cls, url: str) -> Optional[str]:
        """Artist home page (scheme + host) of an item URL."""
        parsed = urlparse(url or '')
        if not parsed.scheme or not parsed.netloc:
            return None
        return f"{parsed.scheme}://{parsed.netloc}"
