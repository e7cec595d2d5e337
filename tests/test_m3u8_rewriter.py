"""
Tests for HLS playlist URI rewriting
"""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from urllib.parse import parse_qs, urlparse

from m3u8_rewriter import build_proxy_url, resolve_uri, rewrite_playlist

PROXY = "https://proxy.example"
BASE = "https://h/a/b/master.m3u8"


def decode_proxy_url(url: str) -> str:
    """Return the upstream URL wrapped by a proxy URL"""
    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}" == PROXY
    assert parsed.path == "/proxy"
    return parse_qs(parsed.query)["m3u8"][0]


class TestResolveUri:
    def test_relative_resolves_against_directory(self):
        assert resolve_uri("seg1.ts", BASE) == "https://h/a/b/seg1.ts"

    def test_parent_and_root_relative(self):
        assert resolve_uri("../c/seg.ts", BASE) == "https://h/a/c/seg.ts"
        assert resolve_uri("/root/seg.ts", BASE) == "https://h/root/seg.ts"

    def test_absolute_untouched(self):
        assert resolve_uri("https://other/x.ts", BASE) == "https://other/x.ts"
        assert resolve_uri("HTTP://other/x.ts", BASE) == "HTTP://other/x.ts"

    def test_base_query_is_not_inherited(self):
        assert resolve_uri("seg.ts", "https://h/a/master.m3u8?token=1") == "https://h/a/seg.ts"


class TestRewritePlaylist:
    """Test line-oriented playlist rewriting"""

    def test_relative_segment_line(self):
        result = rewrite_playlist("#EXTM3U\n#EXTINF:10.0,\nseg1.ts\n", BASE, PROXY)
        lines = result.split("\n")

        assert lines[0] == "#EXTM3U"
        assert lines[1] == "#EXTINF:10.0,"
        assert decode_proxy_url(lines[2]) == "https://h/a/b/seg1.ts"
        assert result.endswith("\n")

    def test_absolute_segment_line(self):
        result = rewrite_playlist("https://other/x.ts", BASE, PROXY)
        assert decode_proxy_url(result) == "https://other/x.ts"

    def test_exact_encoding(self):
        result = rewrite_playlist("seg.ts", "https://origin/a/master.m3u8", PROXY)
        assert result == f"{PROXY}/proxy?m3u8=https%3A%2F%2Forigin%2Fa%2Fseg.ts"

    def test_segment_with_query_string(self):
        result = rewrite_playlist("seg.ts?token=abc&x=1", BASE, PROXY)
        assert decode_proxy_url(result) == "https://h/a/b/seg.ts?token=abc&x=1"

    def test_variant_playlist_lines(self):
        playlist = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360\n"
            "360p/index.m3u8\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=1400000,RESOLUTION=1280x720\n"
            "720p/index.m3u8\n"
        )
        lines = rewrite_playlist(playlist, BASE, PROXY).split("\n")

        assert lines[1] == "#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360"
        assert decode_proxy_url(lines[2]) == "https://h/a/b/360p/index.m3u8"
        assert decode_proxy_url(lines[4]) == "https://h/a/b/720p/index.m3u8"

    def test_uri_attributes(self):
        playlist = (
            '#EXT-X-KEY:METHOD=AES-128,URI="key.bin",IV=0x1234\n'
            '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",URI="https://cdn/audio.m3u8"\n'
        )
        result = rewrite_playlist(playlist, BASE, PROXY)
        key_line, media_line, _ = result.split("\n")

        expected_key = build_proxy_url("https://h/a/b/key.bin", PROXY)
        assert key_line == f'#EXT-X-KEY:METHOD=AES-128,URI="{expected_key}",IV=0x1234'
        expected_media = build_proxy_url("https://cdn/audio.m3u8", PROXY)
        assert media_line == f'#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",URI="{expected_media}"'

    def test_other_lines_pass_through(self):
        playlist = (
            "#EXTM3U\n"
            "#EXT-X-VERSION:3\n"
            "#EXT-X-TARGETDURATION:10\n"
            "# a comment mentioning seg.ts\n"
            "\n"
            "not-a-segment.txt\n"
            "#EXT-X-ENDLIST"
        )
        assert rewrite_playlist(playlist, BASE, PROXY) == playlist

    def test_crlf_line_endings_preserved(self):
        playlist = "#EXTM3U\r\n#EXTINF:4,\r\nseg.ts\r\n"
        result = rewrite_playlist(playlist, BASE, PROXY)
        lines = result.split("\r\n")

        assert result.count("\r\n") == 3
        assert lines[0] == "#EXTM3U"
        assert decode_proxy_url(lines[2]) == "https://h/a/b/seg.ts"

    def test_unicode_breaks_inside_comment_are_content(self):
        """NEL, form feed and U+2028 in a title do not start a new line"""
        for separator in ("\x85", "\x0c", "\x0b", "\u2028"):
            title = f"#EXTINF:10,Clip{separator}part.ts"
            playlist = f"#EXTM3U\n{title}\nseg.ts\n"
            lines = rewrite_playlist(playlist, BASE, PROXY).split("\n")

            assert lines[1] == title
            assert decode_proxy_url(lines[2]) == "https://h/a/b/seg.ts"

    def test_lone_cr_line_endings_preserved(self):
        result = rewrite_playlist("#EXTM3U\rseg.ts\r", BASE, PROXY)
        lines = result.split("\r")

        assert lines[0] == "#EXTM3U"
        assert decode_proxy_url(lines[1]) == "https://h/a/b/seg.ts"
        assert lines[2] == ""

    def test_idempotent_on_proxied_playlist(self):
        playlist = (
            "#EXTM3U\n"
            '#EXT-X-KEY:METHOD=AES-128,URI="key.bin"\n'
            "#EXTINF:10,\n"
            "seg1.ts\n"
            "#EXTINF:10,\n"
            "https://other/x.ts\n"
        )
        once = rewrite_playlist(playlist, BASE, PROXY)
        twice = rewrite_playlist(once, BASE, PROXY)

        assert twice == once
        assert "%253A" not in twice

    def test_pure_function(self):
        playlist = "#EXTM3U\nseg1.ts\n"
        assert rewrite_playlist(playlist, BASE, PROXY) == rewrite_playlist(playlist, BASE, PROXY)

    def test_proxy_origin_trailing_slash(self):
        result = rewrite_playlist("seg.ts", BASE, PROXY + "/")
        assert result.startswith(f"{PROXY}/proxy?m3u8=")
