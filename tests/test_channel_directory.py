"""Tests for the channel directory (iptv-org listing and playlists)."""

import asyncio
import json

import httpx
import pytest

from epg_guide.errors import UpstreamFetchError
from epg_guide.services.channel_directory_service import (
    build_directory,
    categorize_channels,
    fetch_channel_api,
    fetch_playlist_directory,
    is_relevant_channel,
)
from epg_guide.services.fetch_types import ChannelDirectoryEntry


CHANNELS_URL = "https://api.example.com/channels.json"
STREAMS_URL = "https://api.example.com/streams.json"
LOGOS_URL = "https://api.example.com/logos.json"

LISTING = [
    {"id": "TF1.fr", "name": "TF1", "country": "FR", "languages": ["fra"], "categories": ["general"]},
    {"id": "BeIN.qa", "name": "beIN Sports", "country": "QA", "languages": ["ara"], "categories": ["sports"]},
    {"id": "CNN.us", "name": "CNN", "country": "US", "languages": ["eng"], "categories": ["news"]},
    {"id": "Local.de", "name": "Lokal", "country": "DE", "languages": ["deu"], "categories": ["general"]},
    {"id": "NoStream.fr", "name": "No Stream", "country": "FR", "languages": ["fra"], "categories": []},
]
STREAMS = [
    {"channel": "TF1.fr", "url": "http://stream/tf1"},
    {"channel": "TF1.fr", "url": "http://stream/tf1-backup"},
    {"channel": "BeIN.qa", "url": "http://stream/bein"},
    {"channel": "CNN.us", "url": "http://stream/cnn"},
    {"channel": "Local.de", "url": "http://stream/lokal"},
]
LOGOS = [{"channel": "TF1.fr", "url": "https://logos/tf1.png"}]


class TestIsRelevantChannel:
    def test_language(self):
        assert is_relevant_channel({"languages": ["FRA"]}, ["fra"], [])

    def test_country_objects(self):
        assert is_relevant_channel({"country": {"code": "MA"}}, [], ["ma"])

    def test_sports_category(self):
        assert is_relevant_channel({"categories": ["Sports"]}, [], [])

    def test_irrelevant(self):
        assert not is_relevant_channel({"languages": ["deu"], "country": "DE"}, ["fra"], ["fr"])


class TestBuildDirectory:
    def test_filters_and_maps(self):
        entries = build_directory(LISTING, STREAMS, LOGOS, ["fra", "eng"], ["fr"])

        assert [entry.id for entry in entries] == ["TF1.fr", "BeIN.qa", "CNN.us"]
        tf1 = entries[0]
        assert tf1.stream_url == "http://stream/tf1"
        assert tf1.logo_url == "https://logos/tf1.png"
        assert tf1.languages == ("fra",)
        assert tf1.country == "fr"
        assert entries[1].logo_url is None

    def test_channel_logo_fallback(self):
        listing = [{"id": "a", "name": "A", "languages": ["fra"], "logo": "https://logo/a.png"}]
        streams = [{"channel": "a", "url": "http://a"}]

        assert build_directory(listing, streams, [], ["fra"], [])[0].logo_url == "https://logo/a.png"

    def test_requires_stream(self):
        assert build_directory(LISTING, [], LOGOS, ["fra"], ["fr"]) == []


class TestCategorizeChannels:
    def test_groups(self):
        entries = [
            ChannelDirectoryEntry(id="a", name="A", categories=("General",)),
            ChannelDirectoryEntry(id="b", name="B", categories=("Sports", "News")),
            ChannelDirectoryEntry(id="c", name="C", categories=("Movies",)),
            ChannelDirectoryEntry(id="d", name="D"),
        ]
        groups = categorize_channels(entries)

        assert [entry.id for entry in groups["entertainment"]] == ["a"]
        assert [entry.id for entry in groups["sports"]] == ["b"]
        assert [entry.id for entry in groups["news"]] == ["b"]
        assert [entry.id for entry in groups["movies"]] == ["c"]
        assert groups["kids"] == []
        assert set(groups) == {"sports", "news", "entertainment", "kids", "movies", "series", "documentary"}

    def test_french_group_titles(self):
        entries = [
            ChannelDirectoryEntry(id="info", name="Info", categories=("Actualités",)),
            ChannelDirectoryEntry(id="divert", name="Divert", categories=("Divertissement",)),
            ChannelDirectoryEntry(id="jeune", name="Jeune", categories=("Enfants",)),
            ChannelDirectoryEntry(id="ciné", name="Ciné", categories=("Cinéma",)),
            ChannelDirectoryEntry(id="serie", name="Série", categories=("Séries",)),
            ChannelDirectoryEntry(id="docu", name="Docu", categories=("Documentaire",)),
        ]
        groups = categorize_channels(entries)

        assert [entry.id for entry in groups["news"]] == ["info"]
        assert [entry.id for entry in groups["entertainment"]] == ["divert"]
        assert [entry.id for entry in groups["kids"]] == ["jeune"]
        assert [entry.id for entry in groups["movies"]] == ["ciné"]
        assert [entry.id for entry in groups["series"]] == ["serie"]
        assert [entry.id for entry in groups["documentary"]] == ["docu"]
        assert groups["sports"] == []


def api_client(routes: dict[str, httpx.Response]) -> httpx.AsyncClient:
    def handler(request):
        return routes.get(str(request.url), httpx.Response(404))

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def fetch(client, **kwargs):
    async def go():
        async with client:
            return await fetch_channel_api(
                CHANNELS_URL, STREAMS_URL, LOGOS_URL, ["fra"], ["fr"], client=client, **kwargs
            )

    return asyncio.run(go())


class TestFetchChannelApi:
    def test_fetches_all_listings(self):
        client = api_client({
            CHANNELS_URL: httpx.Response(200, json=LISTING),
            STREAMS_URL: httpx.Response(200, json=STREAMS),
            LOGOS_URL: httpx.Response(200, json=LOGOS),
        })
        entries = fetch(client)

        assert [entry.id for entry in entries] == ["TF1.fr", "BeIN.qa"]
        assert entries[0].logo_url == "https://logos/tf1.png"

    def test_missing_optional_listings(self):
        client = api_client({CHANNELS_URL: httpx.Response(200, json=LISTING)})
        assert fetch(client) == []

    def test_missing_logos_only(self):
        client = api_client({
            CHANNELS_URL: httpx.Response(200, json=LISTING),
            STREAMS_URL: httpx.Response(200, json=STREAMS),
        })
        entries = fetch(client)

        assert len(entries) == 2
        assert entries[0].logo_url is None

    def test_channels_endpoint_is_required(self):
        client = api_client({STREAMS_URL: httpx.Response(200, json=STREAMS)})
        with pytest.raises(UpstreamFetchError):
            fetch(client)

    def test_invalid_json(self):
        client = api_client({CHANNELS_URL: httpx.Response(200, content=b"<html>")})
        with pytest.raises(UpstreamFetchError):
            fetch(client)

    def test_non_list_json(self):
        client = api_client({CHANNELS_URL: httpx.Response(200, content=json.dumps({"id": 1}).encode())})
        with pytest.raises(UpstreamFetchError):
            fetch(client)


class TestFetchPlaylistDirectory:
    def test_local_playlist(self, tmp_path, sample_m3u):
        path = tmp_path / "channels.m3u"
        path.write_text(sample_m3u, encoding="utf-8")

        entries = asyncio.run(fetch_playlist_directory(str(path)))
        assert [entry.id for entry in entries] == ["tf1.fr", "lequipe.fr"]
