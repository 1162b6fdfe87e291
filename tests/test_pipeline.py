"""End-to-end tests for the guide pipeline."""

from datetime import datetime, timedelta, timezone
from io import BytesIO
import gzip
import zipfile

import pytest

from epg_guide.errors import DecompressionError, InvalidDocument, NoData
from epg_guide.services.fetch_types import (
    ChannelDirectoryEntry,
    CorrelationStrategy,
    PipelineConfig,
    SourceMode,
)
from epg_guide.services.pipeline_service import GuidePipeline, decompress_payload, duration_minutes
from epg_guide.utils.categories import ProgramCategory
from epg_guide.utils.logos import resolve_logo


UTC_CONFIG = PipelineConfig(naive_timezone=timezone.utc)


def run(payload, now, config=UTC_CONFIG, mode=SourceMode.XMLTV, **kwargs):
    return GuidePipeline().run(payload, mode, now, config, **kwargs)


class TestMinimalGuide:
    def test_single_live_programme(self, minimal_xmltv):
        now = datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)
        result = run(minimal_xmltv, now)

        assert len(result.programs) == 1
        program = result.programs[0]
        assert program.title == "News"
        assert program.channel_name == "Channel One"
        assert program.category is ProgramCategory.NEWS
        assert program.duration_minutes == 60
        assert program.is_live is True
        assert program.id == "c1-20240101120000-0"
        assert program.start == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert result.generated_at == now
        assert [channel.id for channel in result.channels] == ["c1"]

    def test_not_live_before_start(self, minimal_xmltv):
        now = datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)
        assert run(minimal_xmltv, now).programs[0].is_live is False

    def test_ended_programme_is_dropped(self, minimal_xmltv):
        now = datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)
        result = run(minimal_xmltv, now)

        assert result.programs == ()
        assert result.is_empty

    def test_ended_programme_kept_with_past_horizon(self, minimal_xmltv):
        now = datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)
        config = PipelineConfig(naive_timezone=timezone.utc, past_horizon=timedelta(hours=2))
        assert len(run(minimal_xmltv, now, config).programs) == 1

    def test_empty_is_error(self, minimal_xmltv):
        now = datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)
        config = PipelineConfig(naive_timezone=timezone.utc, empty_is_error=True)
        with pytest.raises(NoData):
            run(minimal_xmltv, now, config)

    def test_requires_aware_now(self, minimal_xmltv):
        with pytest.raises(ValueError):
            run(minimal_xmltv, datetime(2024, 1, 1, 12, 30))


class TestSampleGuide:
    def test_programmes_in_window(self, sample_xmltv, sample_now):
        result = run(sample_xmltv, sample_now)

        assert [program.title for program in result.programs] == [
            "Film du dimanche",
            "Ligue 1 & Co",
            "Mystery",
        ]
        assert all(program.is_live for program in result.programs)

    def test_categories(self, sample_xmltv, sample_now):
        film, match, mystery = run(sample_xmltv, sample_now).programs

        assert film.category is ProgramCategory.CINEMA
        assert match.category is ProgramCategory.SPORT
        assert mystery.category is ProgramCategory.ENTERTAINMENT

    def test_unknown_channel_uses_fallback_name(self, sample_xmltv, sample_now):
        mystery = run(sample_xmltv, sample_now).programs[-1]

        assert mystery.channel_name == "Inconnu"
        assert mystery.channel_id == "unknown.fr"
        assert mystery.logo_url is None

    def test_custom_fallback_name(self, sample_xmltv, sample_now):
        config = PipelineConfig(unknown_channel_name="Unknown")
        assert run(sample_xmltv, sample_now, config).programs[-1].channel_name == "Unknown"

    def test_logos(self, sample_xmltv, sample_now):
        film, match, _ = run(sample_xmltv, sample_now).programs

        assert film.logo_url == "https://example.com/tf1.png"
        assert match.logo_url == resolve_logo("Canal+ Sport")

    def test_film_details(self, sample_xmltv, sample_now):
        film = run(sample_xmltv, sample_now).programs[0]

        assert film.duration_minutes == 90
        assert film.actors == ("Jean Dupont", "Marie Curie")
        assert film.channel_name == "TF1"

    def test_channels_keep_document_order(self, sample_xmltv, sample_now):
        result = run(sample_xmltv, sample_now)
        assert [channel.id for channel in result.channels] == ["tf1.fr", "canalplus.fr"]

    def test_future_horizon(self, sample_xmltv):
        now = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        config = PipelineConfig(future_horizon=timedelta(hours=1))

        titles = [program.title for program in run(sample_xmltv, now, config).programs]
        assert titles == ["Le Journal", "Ligue 1 & Co"]

    def test_cap_per_channel(self, sample_xmltv):
        now = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        config = PipelineConfig(cap_per_channel=1)

        titles = [program.title for program in run(sample_xmltv, now, config).programs]
        assert titles == ["Le Journal", "Ligue 1 & Co", "Mystery"]

    def test_presort_by_start(self, sample_xmltv, sample_now):
        config = PipelineConfig(presort_by_start=True)

        titles = [program.title for program in run(sample_xmltv, sample_now, config).programs]
        assert titles == ["Ligue 1 & Co", "Film du dimanche", "Mystery"]

    def test_max_programs(self, sample_xmltv, sample_now):
        config = PipelineConfig(max_programs=2)
        assert len(run(sample_xmltv, sample_now, config).programs) == 2

    def test_ids_are_unique(self, sample_xmltv):
        now = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        ids = [program.id for program in run(sample_xmltv, now, PipelineConfig()).programs]
        assert len(ids) == len(set(ids)) == 4

    def test_duplicate_programmes_are_dropped(self, minimal_xmltv):
        text = minimal_xmltv.decode("utf-8")
        block = text[text.index("<programme"):text.index("</tv>")]
        doubled = text.replace("</tv>", block + "</tv>")

        now = datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)
        assert len(run(doubled, now).programs) == 1

    def test_fuzzy_correlation(self, sample_now):
        payload = b"""<tv>
          <channel id="tf1.fr"><display-name>TF1</display-name></channel>
          <programme channel="TF1 HD" start="20240101100000 +0000" stop="20240101110000 +0000"><title>T</title></programme>
        </tv>"""
        exact = run(payload, sample_now, PipelineConfig())
        fuzzy = run(payload, sample_now, PipelineConfig(correlation=CorrelationStrategy.FUZZY))

        assert exact.programs[0].channel_name == "Inconnu"
        assert fuzzy.programs[0].channel_name == "TF1"
        assert fuzzy.programs[0].channel_id == "tf1.fr"

    def test_invalid_document(self, sample_now):
        with pytest.raises(InvalidDocument):
            run(b"<tv><channel", sample_now)


class TestDirectoryMerge:
    def test_directory_channels_are_merged(self, sample_xmltv, sample_now):
        directory = [
            ChannelDirectoryEntry(
                id="tf1.fr",
                name="TF1",
                categories=("general",),
                stream_url="http://stream/tf1",
            ),
            ChannelDirectoryEntry(id="new.fr", name="New Channel", stream_url="http://stream/new"),
        ]
        result = run(sample_xmltv, sample_now, directory=directory)

        assert [channel.id for channel in result.channels] == ["tf1.fr", "canalplus.fr", "new.fr"]
        tf1 = result.channels[0]
        assert tf1.logo_url == "https://example.com/tf1.png"
        assert tf1.stream_url == "http://stream/tf1"
        assert tf1.categories == ("general",)
        assert result.channels[2].stream_url == "http://stream/new"

    def test_directory_resolves_unknown_programmes(self, sample_xmltv, sample_now):
        directory = [ChannelDirectoryEntry(id="unknown.fr", name="Mystery TV")]
        mystery = run(sample_xmltv, sample_now, directory=directory).programs[-1]
        assert mystery.channel_name == "Mystery TV"


class TestCompressedPayloads:
    def test_gzip_matches_plain(self, sample_xmltv, sample_now):
        assert run(gzip.compress(sample_xmltv), sample_now) == run(sample_xmltv, sample_now)

    def test_zip_archive(self, sample_xmltv, sample_now):
        buffer = BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("readme.txt", "guide inside")
            archive.writestr("guide.xml", sample_xmltv)

        assert run(buffer.getvalue(), sample_now) == run(sample_xmltv, sample_now)

    def test_corrupt_gzip(self, sample_now):
        with pytest.raises(DecompressionError):
            run(b"\x1f\x8bnot really gzip", sample_now)

    def test_corrupt_zip(self):
        with pytest.raises(DecompressionError):
            decompress_payload(b"PK\x03\x04truncated")

    def test_plain_payload_untouched(self):
        assert decompress_payload(b"<tv/>") == b"<tv/>"
        assert decompress_payload("<tv/>") == "<tv/>"


class TestPlaylistMode:
    def test_channels_only(self, sample_m3u, sample_now):
        result = run(sample_m3u.encode("utf-8"), sample_now, mode=SourceMode.M3U)

        assert result.source_mode is SourceMode.M3U
        assert result.programs == ()
        assert [channel.id for channel in result.channels] == ["tf1.fr", "lequipe.fr"]
        assert not result.is_empty

    def test_duplicate_ids_keep_first(self, sample_now):
        playlist = '#EXTINF:-1 tvg-id="a",First\nhttp://1\n#EXTINF:-1 tvg-id="a",Second\nhttp://2\n'
        result = run(playlist, sample_now, mode=SourceMode.M3U)
        assert [channel.name for channel in result.channels] == ["First"]

    def test_empty_playlist_is_error_when_configured(self, sample_now):
        with pytest.raises(NoData):
            run("#EXTM3U\n", sample_now, PipelineConfig(empty_is_error=True), mode=SourceMode.M3U)


class TestDurationMinutes:
    @pytest.mark.parametrize(
        "seconds, expected",
        [(0, 0), (29, 0), (30, 1), (89, 1), (90, 2), (3600, 60), (-60, 0)],
    )
    def test_rounding(self, seconds, expected):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert duration_minutes(start, start + timedelta(seconds=seconds)) == expected
