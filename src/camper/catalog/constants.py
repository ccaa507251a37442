"""
Catalog endpoints, discovery filter vocabularies and artwork URL helpers.
"""

BASE_URL = "https://bandcamp.com"
API_BASE = f"{BASE_URL}/api"

COLLECTION_SUMMARY_URL = f"{API_BASE}/fan/2/collection_summary"
COLLECTION_ITEMS_URL = f"{API_BASE}/fancollection/1/collection_items"
WISHLIST_ITEMS_URL = f"{API_BASE}/fancollection/1/wishlist_items"
DISCOVER_URL = f"{API_BASE}/discover/3/get_web"
SEARCH_URL = f"{API_BASE}/bcsearch_public_api/1/autocomplete_elastic"

ART_HOST = "https://f4.bcbits.com/img"
ART_FORMAT_THUMB = 10  # 350px, grid cards
ART_FORMAT_LARGE = 5   # 700px, player / detail views

# Collection timestamps, e.g. "07 Jun 2021 17:23:45 GMT"
CATALOG_DATE_FORMAT = "%d %b %Y %H:%M:%S GMT"

GENRES = [
    ("all", "All"),
    ("electronic", "Electronic"),
    ("rock", "Rock"),
    ("metal", "Metal"),
    ("alternative", "Alternative"),
    ("hip-hop-rap", "Hip-Hop/Rap"),
    ("experimental", "Experimental"),
    ("punk", "Punk"),
    ("folk", "Folk"),
    ("pop", "Pop"),
    ("ambient", "Ambient"),
    ("soundtrack", "Soundtrack"),
    ("world", "World"),
    ("jazz", "Jazz"),
    ("acoustic", "Acoustic"),
    ("funk", "Funk"),
    ("r-b-soul", "R&B/Soul"),
    ("devotional", "Devotional"),
    ("classical", "Classical"),
    ("reggae", "Reggae"),
    ("podcasts", "Podcasts"),
    ("country", "Country"),
    ("spoken-word", "Spoken Word"),
    ("comedy", "Comedy"),
    ("blues", "Blues"),
    ("kids", "Kids"),
    ("audiobooks", "Audiobooks"),
    ("latin", "Latin"),
]

SORT_OPTIONS = [
    ("new", "New Arrivals"),
    ("rec", "Recommended"),
    ("top", "Best Sellers"),
]

FORMAT_OPTIONS = [
    ("all", "Any Format"),
    ("digital", "Digital"),
    ("vinyl", "Vinyl"),
    ("cd", "CD"),
    ("cassette", "Cassette"),
]

SEARCH_FILTERS = [
    ("", "All"),
    ("a", "Albums"),
    ("t", "Tracks"),
    ("b", "Artists"),
]

LIBRARY_SORTS = [
    ("date", "Recently Added"),
    ("title", "Title"),
    ("artist", "Artist"),
]


def art_url(art_id: int, format_id: int) -> str:
    """Build an image URL from an art id using the given format id."""
    return f"{ART_HOST}/a{int(art_id):010d}_{format_id}.jpg"


def art_url_thumb(art_id: int) -> str:
    return art_url(art_id, ART_FORMAT_THUMB)


def art_url_large(art_id: int) -> str:
    return art_url(art_id, ART_FORMAT_LARGE)
