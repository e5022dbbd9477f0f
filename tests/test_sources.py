"""
Tests for source list building, manifest detection and HLS variant parsing.
"""
import pytest
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sources import (
    Source,
    build_source_list,
    is_adaptive_manifest,
    parse_hls_variants,
    parse_stream_modifiers,
    select_hls_variant,
)


class TestBuildSourceList:
    """Test ordering and labelling of candidate sources."""

    def test_primary_first_then_alternates(self):
        """Test the primary address leads and alternates keep their order."""
        sources = build_source_list(
            "http://a/live.m3u8",
            [{"address": "http://b/live.m3u8", "label": "Backup"}, Source("http://c/live.ts", "Mirror")],
        )

        assert [s.address for s in sources] == ["http://a/live.m3u8", "http://b/live.m3u8", "http://c/live.ts"]
        assert [s.label for s in sources] == ["Source 1", "Backup", "Mirror"]

    def test_missing_labels_are_numbered(self):
        """Test alternates without a label get a positional one."""
        sources = build_source_list("a", [{"url": "b"}, {"address": "c", "label": "  "}])

        assert [s.label for s in sources] == ["Source 1", "Source 2", "Source 3"]

    def test_blank_and_invalid_entries_are_dropped(self):
        """Test empty addresses and non-mapping entries are skipped."""
        sources = build_source_list("", [{"address": ""}, None, 42, {"address": " b "}])

        assert sources == [Source("b", "Source 1")]

    def test_duplicates_are_dropped(self):
        """Test an address is only listed once."""
        sources = build_source_list("a", [{"address": "a"}, {"address": "b"}, {"address": "b"}])

        assert [s.address for s in sources] == ["a", "b"]

    def test_nothing_usable(self):
        """Test no usable address yields an empty list."""
        assert build_source_list("   ", None) == []


class TestManifestDetection:
    """Test adaptive manifest suffix matching."""

    @pytest.mark.parametrize(
        "address",
        [
            "http://cdn/live/index.m3u8",
            "http://cdn/live/INDEX.M3U8",
            "http://cdn/live/index.m3u8?token=abc",
            "http://cdn/live/index.m3u8|User-Agent=VLC",
        ],
    )
    def test_manifest_addresses(self, address):
        """Test manifest paths match regardless of case, query or modifiers."""
        assert is_adaptive_manifest(address) is True

    @pytest.mark.parametrize(
        "address",
        [
            "http://cdn/live/stream.ts",
            "http://cdn/video.mp4",
            "http://cdn/play?file=index.m3u8",
            "",
        ],
    )
    def test_direct_addresses(self, address):
        """Test non-manifest paths are played directly."""
        assert is_adaptive_manifest(address) is False

    def test_custom_suffixes(self):
        """Test the suffix list can be replaced."""
        assert is_adaptive_manifest("http://cdn/a.mpd", (".mpd",)) is True
        assert is_adaptive_manifest("http://cdn/a.m3u8", (".mpd",)) is False


class TestStreamModifiers:
    """Test piped header modifiers on stream URLs."""

    def test_known_headers(self):
        """Test user-agent, referer and bearer tokens are recognised."""
        base, headers = parse_stream_modifiers(
            "http://cdn/a.m3u8|User-Agent=My%20UA|Referrer=http://r/|token=xyz"
        )

        assert base == "http://cdn/a.m3u8"
        assert headers["user-agent"] == "My UA"
        assert headers["referer"] == "http://r/"
        assert headers["authorization"] == "Bearer xyz"

    def test_unknown_headers_are_kept_as_extras(self):
        """Test unrecognised keys are forwarded as raw headers."""
        _base, headers = parse_stream_modifiers("http://cdn/a.ts|x-custom-id=7")

        assert headers["_extra"] == ["X-Custom-Id: 7"]

    def test_no_modifiers(self):
        """Test a plain URL has no headers."""
        assert parse_stream_modifiers("http://cdn/a.ts") == ("http://cdn/a.ts", {})


class TestHlsVariants:
    """Test master playlist parsing and variant selection."""

    MASTER = (
        "#EXTM3U\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=800000,AVERAGE-BANDWIDTH=700000\n"
        "low.m3u8\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=3000000,CODECS=\"avc1.4d401f,mp4a.40.2\"\n"
        "\n"
        "http://other.cdn/high.m3u8\n"
    )

    def test_parse_variants(self):
        """Test URIs are resolved and average bandwidth is preferred."""
        variants = parse_hls_variants(self.MASTER, "http://cdn/live/master.m3u8")

        assert variants == [
            {"url": "http://cdn/live/low.m3u8", "bandwidth_mbps": 0.7},
            {"url": "http://other.cdn/high.m3u8", "bandwidth_mbps": 3.0},
        ]

    def test_media_playlist_has_no_variants(self):
        """Test a media playlist yields nothing to choose from."""
        text = "#EXTM3U\n#EXTINF:6.0,\nseg1.ts\n"

        assert parse_hls_variants(text, "http://cdn/live/index.m3u8") == []

    def test_select_under_cap(self):
        """Test the highest variant within the cap wins."""
        variants = parse_hls_variants(self.MASTER, "http://cdn/live/master.m3u8")

        assert select_hls_variant(variants, 5)["url"] == "http://other.cdn/high.m3u8"
        assert select_hls_variant(variants, 1)["url"] == "http://cdn/live/low.m3u8"

    def test_select_below_every_variant(self):
        """Test a cap below every variant picks the lowest bitrate."""
        variants = parse_hls_variants(self.MASTER, "http://cdn/live/master.m3u8")

        assert select_hls_variant(variants, 0.25)["url"] == "http://cdn/live/low.m3u8"

    def test_select_without_bandwidth_info(self):
        """Test variants without bandwidth fall back to the first entry."""
        variants = [{"url": "a", "bandwidth_mbps": None}, {"url": "b", "bandwidth_mbps": None}]

        assert select_hls_variant(variants, 2)["url"] == "a"

    def test_no_cap_selects_nothing(self):
        """Test no cap leaves the choice to the player."""
        variants = parse_hls_variants(self.MASTER, "http://cdn/live/master.m3u8")

        assert select_hls_variant(variants, None) is None
        assert select_hls_variant([], 5) is None
