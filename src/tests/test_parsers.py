import json
from datetime import datetime, timezone

import pytest

from camper.catalog.models import (
    AcquisitionKind, Album, EntityKind, OriginKind, Track, entries_for_album,
)
from camper.catalog.parsers import (
    parse_album_page, parse_catalog_date, parse_discovery_item, parse_library_entry,
    parse_records, parse_search_result,
)
from camper.utils.exceptions import ParseError

ALBUM = "https://artist.bandcamp.com/album/night-drive"


def album_page(data, tags=("synthwave", "electronic")):
    tag_links = "".join(f'<a class="tag" href="/tag/{t}">{t}</a>' for t in tags)
    payload = json.dumps(data).replace('"', '&quot;')
    return (
        "<html><head>"
        f'<script type="text/javascript" data-tralbum="{payload}"></script>'
        "</head><body>"
        f'<div class="tralbumData tralbum-tags">{tag_links}</div>'
        "</body></html>"
    )


def tralbum(tracks):
    return {
        'current': {'title': "Night Drive", 'release_date': "01 Mar 2022 00:00:00 GMT", 'band_id': 77},
        'artist': "Neon Artist",
        'art_id': 1234567,
        'packages': [{'type_name': "Vinyl LP"}],
        'trackinfo': tracks,
    }


def track_record(num, streamable=True):
    record = {
        'title': f"Track {num}",
        'track_num': num,
        'duration': 200.5,
        'title_link': f"/track/track-{num}",
    }
    if streamable:
        record['file'] = {'mp3-128': f"https://t4.bcbits.com/stream/{num}"}
    return record


def test_page_with_malformed_records_keeps_the_rest_in_order():
    records = [
        {'type': 'a', 'name': "First", 'item_url_path': "https://a.bandcamp.com/album/first"},
        {'type': 'a', 'item_url_path': "https://a.bandcamp.com/album/untitled"},
        "not a record",
        {'type': 'a', 'name': "Second", 'item_url_path': "https://a.bandcamp.com/album/second"},
        {'type': 't', 'name': "No url"},
        {'type': 't', 'name': "Third", 'item_url_path': "https://a.bandcamp.com/track/third"},
    ]

    items, skipped = parse_records(records, parse_search_result, context="search")

    assert skipped == 3
    assert [item.title for item in items] == ["First", "Second", "Third"]
    assert items[2].kind is EntityKind.TRACK


def test_parse_records_rejects_non_list_page():
    with pytest.raises(ParseError):
        parse_records({'items': []}, parse_search_result)
    assert parse_records(None, parse_search_result) == ([], 0)


def test_search_artist_result_uses_root_url():
    result = parse_search_result({
        'type': 'b', 'name': "Neon Artist", 'item_url_root': "https://neon.bandcamp.com",
        'art_id': 42, 'genre': "electronic",
    })
    assert result.kind is EntityKind.ARTIST
    assert result.id == "https://neon.bandcamp.com"
    assert result.artist == "Neon Artist"
    assert result.art_url == "https://f4.bcbits.com/img/a0000000042_10.jpg"


def test_discovery_item_builds_url_from_hints():
    item = parse_discovery_item({
        'primary_text': "Night Drive",
        'secondary_text': "Neon Artist",
        'genre_text': "electronic",
        'art_id': 7,
        'url_hints': {'subdomain': "neon", 'slug': "night-drive", 'item_type': "a"},
    })
    assert item.id == "https://neon.bandcamp.com/album/night-drive"
    assert item.artist == "Neon Artist"
    assert item.genre == "electronic"


def test_discovery_item_without_hints_is_malformed():
    with pytest.raises(ParseError):
        parse_discovery_item({'primary_text': "Nowhere"})


def test_library_entries():
    album_entry = parse_library_entry({
        'item_title': "Night Drive", 'item_url': ALBUM, 'band_name': "Neon Artist",
        'item_type': "album", 'item_art_id': 9, 'band_id': 77,
        'purchased': "07 Jun 2021 17:23:45 GMT",
    }, AcquisitionKind.PURCHASED)
    assert isinstance(album_entry.item, Album)
    assert album_entry.album_id == ALBUM
    assert album_entry.acquired_at == datetime(2021, 6, 7, 17, 23, 45, tzinfo=timezone.utc)

    track_entry = parse_library_entry({
        'item_title': "Single", 'item_url': "https://neon.bandcamp.com/track/single",
        'band_name': "Neon Artist", 'item_type': "track", 'added': "garbage",
    }, AcquisitionKind.WISHLIST)
    assert isinstance(track_entry.item, Track)
    assert track_entry.item.id == "https://neon.bandcamp.com/track/single#1"
    assert track_entry.acquired_at is None
    assert track_entry.kind is AcquisitionKind.WISHLIST


def test_parse_catalog_date():
    assert parse_catalog_date(None) is None
    assert parse_catalog_date("yesterday") is None
    assert parse_catalog_date("01 Mar 2022 00:00:00 GMT").year == 2022


def test_album_page():
    html = album_page(tralbum([track_record(1), track_record(2, streamable=False), track_record(3)]))

    album = parse_album_page(html, ALBUM)

    assert album.id == ALBUM
    assert album.title == "Night Drive"
    assert album.artist == "Neon Artist"
    assert album.artist_id == "77"
    assert album.tags == ("synthwave", "electronic")
    assert album.genre == "synthwave"
    assert album.format == "Vinyl LP"
    assert album.release_date.year == 2022
    assert album.art_url == "https://f4.bcbits.com/img/a0001234567_10.jpg"
    assert [track.position for track in album.tracks] == [1, 2, 3]
    assert [track.title for track in album.playable_tracks()] == ["Track 1", "Track 3"]

    first = album.tracks[0]
    assert first.id == f"{ALBUM}#1"
    assert first.duration == 200.5
    assert first.stream_url == "https://t4.bcbits.com/stream/1"
    assert first.url == "https://artist.bandcamp.com/track/track-1"


def test_album_page_skips_malformed_tracks():
    html = album_page(tralbum([track_record(1), {'track_num': 2}, track_record(3)]))

    album = parse_album_page(html, ALBUM)

    assert [track.position for track in album.tracks] == [1, 3]


def test_track_without_number_uses_list_position():
    record = track_record(1)
    del record['track_num']
    html = album_page(tralbum([record]))

    album = parse_album_page(html, ALBUM)

    assert album.tracks[0].position == 1


def test_page_without_album_data_raises():
    with pytest.raises(ParseError):
        parse_album_page("<html><body>Not here</body></html>", ALBUM)
    with pytest.raises(ParseError):
        parse_album_page(album_page({'current': {}}), ALBUM)


def test_album_tracks_map_back_to_album_id():
    album = parse_album_page(album_page(tralbum([track_record(1), track_record(2)])), ALBUM)

    entries = entries_for_album(album, origin_kind=OriginKind.SEARCH, label="night")

    assert len(entries) == 2
    for entry in entries:
        assert entry.album_id == album.id
        assert entry.track.album_id == album.id
        assert entry.origin.label == "night"


def test_wrong_typed_kind_skips_only_that_record():
    records = [
        {'type': 'a', 'name': "First", 'item_url_path': "https://a.bandcamp.com/album/first"},
        {'type': 7, 'name': "Numbered", 'item_url_path': "https://a.bandcamp.com/album/numbered"},
        {'type': 'a', 'name': "Second", 'item_url_path': "https://a.bandcamp.com/album/second"},
    ]

    items, skipped = parse_records(records, parse_search_result, context="search")

    assert skipped == 1
    assert [item.title for item in items] == ["First", "Second"]


def test_wrong_typed_library_item_type_is_skipped():
    def record(title, item_type):
        return {'item_title': title, 'item_url': f"https://neon.bandcamp.com/album/{title}",
                'item_type': item_type}

    items, skipped = parse_records(
        [record("one", "album"), record("two", ["track"]), record("three", "track")],
        lambda raw: parse_library_entry(raw, AcquisitionKind.PURCHASED),
        context="collection",
    )

    assert skipped == 1
    assert [entry.title for entry in items] == ["one", "three"]
    assert isinstance(items[1].item, Track)


def test_unexpected_field_shape_is_counted_as_malformed():
    def explode(record):
        if record == "bad":
            raise TypeError("unexpected shape")
        return record

    assert parse_records(["ok", "bad", "fine"], explode) == (["ok", "fine"], 1)


def test_non_decimal_track_number_falls_back_to_list_position():
    records = [track_record(1), track_record(2), track_record(3)]
    records[1]['track_num'] = "²"

    album = parse_album_page(album_page(tralbum(records)), ALBUM)

    assert [track.position for track in album.tracks] == [1, 2, 3]
    assert album.tracks[1].title == "Track 2"


def test_kind_codes_that_are_not_text_map_to_album():
    assert EntityKind.from_code(7) is EntityKind.ALBUM
    assert EntityKind.from_code(None) is EntityKind.ALBUM
    assert EntityKind.from_code("Track") is EntityKind.TRACK
