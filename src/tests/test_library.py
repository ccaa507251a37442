from datetime import datetime, timezone

import pytest

from camper.catalog.library import filter_library
from camper.catalog.models import AcquisitionKind, Album, LibraryEntry


def entry(title, artist, kind=AcquisitionKind.PURCHASED, day=None):
    album = Album(id=f"https://x.bandcamp.com/album/{title.lower()}", title=title, artist=artist)
    acquired = datetime(2023, 1, day, tzinfo=timezone.utc) if day else None
    return LibraryEntry(album, kind, acquired)


@pytest.fixture
def entries():
    return [
        entry("Night Drive", "Neon Artist", day=3),
        entry("Undated", "Zed"),
        entry("Blue Hour", "Ambient Co", AcquisitionKind.WISHLIST, day=9),
        entry("Arcade", "neon artist", day=1),
    ]


def test_default_is_newest_first_with_undated_last(entries):
    titles = [e.title for e in filter_library(entries)]

    assert titles == ["Blue Hour", "Night Drive", "Arcade", "Undated"]


def test_kind_filter(entries):
    wishlist = filter_library(entries, AcquisitionKind.WISHLIST)
    collection = filter_library(entries, AcquisitionKind.PURCHASED)

    assert [e.title for e in wishlist] == ["Blue Hour"]
    assert len(collection) == 3


def test_query_matches_title_or_artist_case_insensitively(entries):
    assert [e.title for e in filter_library(entries, query="NEON")] == ["Night Drive", "Arcade"]
    assert [e.title for e in filter_library(entries, query=" hour ")] == ["Blue Hour"]
    assert filter_library(entries, query="nothing") == []


def test_title_and_artist_sorts(entries):
    assert [e.title for e in filter_library(entries, sort="title")] == [
        "Arcade", "Blue Hour", "Night Drive", "Undated",
    ]
    assert [e.title for e in filter_library(entries, sort="artist")] == [
        "Blue Hour", "Arcade", "Night Drive", "Undated",
    ]


def test_input_is_not_modified(entries):
    before = list(entries)
    filter_library(entries, sort="title")

    assert entries == before


def test_unknown_sort(entries):
    with pytest.raises(ValueError):
        filter_library(entries, sort="price")
