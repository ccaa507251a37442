"""
Content Client for the Camper catalog
=====================================

Issues authenticated requests against the catalog API and album pages and
maps the responses into domain entities.

- Every request attaches the credential current at the moment it is sent.
- Authentication failures surface as AuthExpired, transport failures as
  NetworkError, unusable payloads as ParseError.
- Paged calls return one Page at a time; the caller asks for the next one.
- Stream URLs are never cached: resolve_stream_uri() refetches every time.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp
import async_timeout

from camper.catalog import constants
from camper.catalog.models import (
    AcquisitionKind, Album, DiscoveryItem, FanInfo, LibraryEntry, Page, SearchResult,
)
from camper.catalog.paging import PagedResults
from camper.catalog.parsers import (
    parse_album_page, parse_discovery_item, parse_library_entry, parse_records,
    parse_search_result,
)
from camper.utils.config import DEFAULT_USER_AGENT
from camper.utils.exceptions import AuthExpired, NetworkError, ParseError, StreamUnavailable
from camper.utils.session_store import SessionCredential, SessionStore
from camper.utils.url_utils import URLUtils

logger = logging.getLogger(__name__)

AUTH_STATUSES = (401, 403)
AUTH_ERROR_HINTS = ('login', 'log in', 'logged in', 'not authenticated', 'signed in')


class ContentClient:
    """
    Async catalog client.

    One aiohttp session is shared by all requests; it is created lazily and
    closed by close() (or by leaving the async context).
    """

    def __init__(self, session_store: SessionStore, config: dict = None,
                 http_session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize the content client

        Args:
            session_store: Source of the credential attached to each request
            config: Application configuration (timeouts, page size, user agent)
            http_session: Optional pre-built session (tests inject a fake one)
        """
        config = config or {}
        self.session_store = session_store
        self.request_timeout = float(config.get('request_timeout', 15.0))
        self.page_size = int(config.get('page_size', 50))
        self.user_agent = config.get('user_agent', DEFAULT_USER_AGENT)

        self._http = http_session
        self._owns_http = http_session is None
        self._fan_cache: Optional[tuple] = None  # (credential, FanInfo)
        self._fan_lock = asyncio.Lock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def http(self):
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._http is not None and self._owns_http:
            await self._http.close()
        self._http = None

    def reset_identity(self):
        """Forget the cached fan identity (login/logout)."""
        self._fan_cache = None

    # ------------------------------------------------------------------
    # Transport

    def _headers(self, credential: Optional[SessionCredential]) -> Dict[str, str]:
        headers = {'User-Agent': self.user_agent}
        if credential is not None and credential.valid:
            headers['Cookie'] = credential.blob
        return headers

    async def _request(self, method: str, url: str, *, params: dict = None,
                       json_body: dict = None, expect: str = 'json') -> Any:
        """
        Send one request with the current credential.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters
            json_body: JSON request body
            expect: 'json' or 'text'

        Raises:
            AuthExpired: the catalog rejected the credential
            NetworkError: transport failure, timeout or non-auth HTTP error
            ParseError: the body was not valid JSON
        """
        credential = self.session_store.current()
        headers = self._headers(credential)

        try:
            async with async_timeout.timeout(self.request_timeout):
                async with self.http.request(method, url, params=params, json=json_body,
                                             headers=headers) as response:
                    status = response.status
                    if status in AUTH_STATUSES:
                        await self._report_expired(credential, f"HTTP {status} from {url}")
                    if status >= 400:
                        raise NetworkError(f"HTTP {status} from {url}", status=status)
                    if expect == 'text':
                        return await response.text()
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as e:
                        raise ParseError(f"Invalid JSON from {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request to {url} timed out after {self.request_timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        if isinstance(payload, dict) and payload.get('error') and _mentions_login(payload):
            await self._report_expired(credential, payload.get('error_message') or "login required")
        return payload

    async def _report_expired(self, credential: Optional[SessionCredential], reason: str):
        logger.warning(f"[CATALOG] Authentication rejected: {reason}")
        self._fan_cache = None
        await self.session_store.mark_expired(credential)
        raise AuthExpired(f"Session expired: {reason}")

    # ------------------------------------------------------------------
    # Identity

    async def fan(self) -> FanInfo:
        """
        Identity of the logged-in fan, cached per credential.

        Raises:
            AuthExpired: no valid credential, or the catalog does not recognize it
        """
        credential = self.session_store.current()
        if credential is None or not credential.valid:
            raise AuthExpired("Not logged in")

        async with self._fan_lock:
            cached = self._fan_cache
            if cached is not None and cached[0] is credential:
                return cached[1]

            payload = await self._request('GET', constants.COLLECTION_SUMMARY_URL)
            summary = payload.get('collection_summary') if isinstance(payload, dict) else None
            if not isinstance(summary, dict) or not isinstance(summary.get('fan_id'), int):
                await self._report_expired(credential, "no collection summary")

            fan = FanInfo(fan_id=summary['fan_id'], username=summary.get('username') or "")
            self._fan_cache = (credential, fan)
            logger.info(f"[CATALOG] Logged in as {fan.username or fan.fan_id}")
            return fan

    async def verify_session(self) -> FanInfo:
        """Post-login check: fetch the fan identity with a fresh cache."""
        self.reset_identity()
        return await self.fan()

    async def _fan_id_or_none(self) -> Optional[int]:
        if not self.session_store.is_valid():
            return None
        return (await self.fan()).fan_id

    # ------------------------------------------------------------------
    # Browsing

    async def search(self, query: str, kind_filter: str = "", page: int = 0) -> Page[SearchResult]:
        """
        Search the catalog.

        The upstream endpoint returns one full result list, so pages are
        windows of page_size over it.

        Args:
            query: Free text
            kind_filter: "" (all), "a" (albums), "t" (tracks), "b" (artists)
            page: Zero-based page number
        """
        query = (query or "").strip()
        if not query:
            return Page(items=(), cursor=page, next_cursor=None)

        payload = await self._request('POST', constants.SEARCH_URL, json_body={
            'search_text': query,
            'search_filter': kind_filter or "",
            'full_page': True,
            'fan_id': await self._fan_id_or_none(),
        })
        auto = payload.get('auto') if isinstance(payload, dict) else None
        records = auto.get('results') if isinstance(auto, dict) else None
        if records is None:
            raise ParseError("Search response without auto.results")
        if not isinstance(records, list):
            raise ParseError("Search results are not a list")

        start = page * self.page_size
        window = records[start:start + self.page_size]
        items, skipped = parse_records(window, parse_search_result, context=f"search '{query}'")
        more = start + self.page_size < len(records)
        return Page(items=tuple(items), cursor=page, next_cursor=page + 1 if more else None,
                    skipped=skipped)

    async def discover(self, genre: str = "all", tag: Any = 0, sort: str = "new",
                       format: str = "all", page: int = 0) -> Page[DiscoveryItem]:
        """
        One page of the discovery feed. Filter values are passed through as-is.
        """
        params = {
            'g': genre or "all",
            's': sort or "new",
            'p': page,
            'gn': tag or 0,
            'f': format or "all",
            'w': 0,
            'lo': 0,
        }
        payload = await self._request('GET', constants.DISCOVER_URL, params=params)
        if not isinstance(payload, dict) or 'items' not in payload:
            raise ParseError("Discover response without items")

        items, skipped = parse_records(payload['items'], parse_discovery_item,
                                       context=f"discover {params['g']}/{params['s']} p{page}")
        raw_count = len(payload['items'] or [])
        return Page(items=tuple(items), cursor=page,
                    next_cursor=page + 1 if raw_count else None, skipped=skipped)

    async def library(self, kind: AcquisitionKind = AcquisitionKind.PURCHASED,
                      page: Optional[str] = None) -> Page[LibraryEntry]:
        """
        One page of the fan's collection or wishlist.

        Args:
            kind: PURCHASED (collection) or WISHLIST
            page: Continuation token from the previous page, None for the first
        """
        fan = await self.fan()
        url = constants.COLLECTION_ITEMS_URL if kind is AcquisitionKind.PURCHASED else constants.WISHLIST_ITEMS_URL
        token = page or f"{int(time.time())}::a::"

        payload = await self._request('POST', url, json_body={
            'fan_id': fan.fan_id,
            'older_than_token': token,
            'count': self.page_size,
        })
        if not isinstance(payload, dict) or 'items' not in payload:
            raise ParseError(f"{kind.value} response without items")

        items, skipped = parse_records(payload['items'],
                                       lambda record: parse_library_entry(record, kind),
                                       context=kind.value)
        next_token = None
        if payload.get('more_available'):
            next_token = payload.get('last_token')
            if not next_token:
                logger.warning(f"[CATALOG] {kind.value}: more items announced but no continuation token")
        return Page(items=tuple(items), cursor=page, next_cursor=next_token, skipped=skipped)

    async def library_all(self) -> List[LibraryEntry]:
        """First collection page followed by the first wishlist page."""
        collection = await self.library(AcquisitionKind.PURCHASED)
        wishlist = await self.library(AcquisitionKind.WISHLIST)
        return list(collection.items) + list(wishlist.items)

    # ------------------------------------------------------------------
    # Resolution

    async def resolve_album(self, album_id: str) -> Album:
        """
        Fetch an album (or single-track) page and build the full Album.

        Args:
            album_id: Album page URL, as carried by search/discovery/library items
        """
        html = await self._request('GET', album_id, expect='text')
        album = parse_album_page(html, album_id)
        logger.info(f"[CATALOG] Resolved '{album.title}' with {len(album.tracks)} track(s)")
        return album

    async def resolve_stream_uri(self, track_id: str) -> str:
        """
        Fresh streamable URL for a track. Never cached.

        Raises:
            StreamUnavailable: the track is gone or has no streamable file
        """
        try:
            album_id, position = URLUtils.split_track_id(track_id)
        except ValueError as e:
            raise StreamUnavailable(str(e)) from e

        album = await self.resolve_album(album_id)
        for track in album.tracks:
            if track.position == position:
                if not track.stream_url:
                    raise StreamUnavailable(f"'{track.title}' has no streamable file")
                return track.stream_url
        raise StreamUnavailable(f"Track {position} not found on {album_id}")

    # ------------------------------------------------------------------
    # Lazy paged sequences

    def search_results(self, query: str, kind_filter: str = "") -> PagedResults[SearchResult]:
        return PagedResults(lambda page: self.search(query, kind_filter, page), first_cursor=0,
                            label=f"search '{query}'")

    def discover_results(self, genre: str = "all", tag: Any = 0, sort: str = "new",
                         format: str = "all") -> PagedResults[DiscoveryItem]:
        return PagedResults(lambda page: self.discover(genre, tag, sort, format, page), first_cursor=0,
                            label=f"discover {genre}/{sort}")

    def library_results(self, kind: AcquisitionKind = AcquisitionKind.PURCHASED) -> PagedResults[LibraryEntry]:
        return PagedResults(lambda token: self.library(kind, token), first_cursor=None,
                            label=kind.value)


def _mentions_login(payload: dict) -> bool:
    message = str(payload.get('error_message') or payload.get('message') or "").lower()
    return any(hint in message for hint in AUTH_ERROR_HINTS)
