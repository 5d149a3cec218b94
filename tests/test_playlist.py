"""Tests for playlist classification and rewriting."""

from urllib.parse import parse_qs, urlparse

import pytest

from anirelay.models import Blank, Comment, Opaque, Reference
from anirelay.playlist import (
    classify_line,
    decode_playlist,
    encode_component,
    is_playlist,
    parse_playlist,
    playlist_base_url,
    proxied_url,
    resolve_reference,
    rewrite_playlist,
)

PROXY = "https://relay.example.com/api/hls"
TARGET = "https://cdn.example.com/hls/show/master.m3u8"
REFERER = "https://rapid-cloud.co/"

MASTER = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-STREAM-INF:BANDWIDTH=1280000,RESOLUTION=1280x720
720/index.m3u8

#EXT-X-STREAM-INF:BANDWIDTH=2560000,RESOLUTION=1920x1080
https://other.example.net/1080/index.m3u8
"""


def _unwrap(line):
    query = parse_qs(urlparse(line).query)
    return query["url"][0], query["referer"][0]


def test_classify_line_variants():
    assert classify_line("") == Blank("")
    assert classify_line("   ") == Blank("   ")
    assert classify_line("#EXTINF:10,") == Comment("#EXTINF:10,")
    assert classify_line("  #EXT-X-ENDLIST") == Comment("  #EXT-X-ENDLIST")
    assert classify_line("seg-001.ts") == Reference("seg-001.ts")
    assert classify_line("variant/chunklist") == Reference("variant/chunklist")
    assert classify_line("segment42") == Opaque("segment42")


@pytest.mark.parametrize("line", ["a.m3u8", "b.ts", "enc.key", "subs.vtt", "audio.aac", "clip.mp4"])
def test_every_media_extension_is_a_reference(line):
    assert isinstance(classify_line(line), Reference)


def test_reference_value_is_trimmed():
    assert Reference("  seg.ts \t").value == "seg.ts"


def test_parse_playlist_keeps_line_count():
    lines = parse_playlist(MASTER)
    assert len(lines) == MASTER.count("\n") + 1
    assert [type(line) for line in lines[:4]] == [Comment, Comment, Comment, Reference]


def test_playlist_base_url_truncates_after_last_slash():
    assert playlist_base_url(TARGET) == "https://cdn.example.com/hls/show/"
    assert playlist_base_url("https://cdn.example.com/a/b.m3u8?token=x/y") == "https://cdn.example.com/a/b.m3u8?token=x/"


def test_resolve_reference():
    base = "https://cdn.example.com/hls/"
    assert resolve_reference("seg.ts", base) == "https://cdn.example.com/hls/seg.ts"
    assert resolve_reference("https://x.example/seg.ts", base) == "https://x.example/seg.ts"
    assert resolve_reference("HTTP://x.example/seg.ts", base) == "HTTP://x.example/seg.ts"


def test_encode_component_matches_encode_uri_component():
    assert encode_component("https://a.b/c d?x=1&y=2") == "https%3A%2F%2Fa.b%2Fc%20d%3Fx%3D1%26y%3D2"
    assert encode_component("it's(ok)!*~") == "it's(ok)!*~"


def test_proxied_url_format():
    url = proxied_url(PROXY, "https://cdn.example.com/a.ts", REFERER)
    assert url == (
        "https://relay.example.com/api/hls?url=https%3A%2F%2Fcdn.example.com%2Fa.ts"
        "&referer=https%3A%2F%2Frapid-cloud.co%2F"
    )


def test_rewrite_master_playlist():
    out = rewrite_playlist(MASTER, TARGET, REFERER, PROXY).split("\n")
    src = MASTER.split("\n")

    assert out[0:3] == src[0:3]
    assert out[4] == ""
    assert out[5] == src[5]

    assert _unwrap(out[3]) == ("https://cdn.example.com/hls/show/720/index.m3u8", REFERER)
    assert _unwrap(out[6]) == ("https://other.example.net/1080/index.m3u8", REFERER)
    assert out[3].startswith(PROXY + "?url=")


def test_rewrite_media_playlist_exact_output():
    body = "#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI=\"enc.key\"\n#EXTINF:4.0,\nseg-1.ts\n#EXT-X-ENDLIST\n"
    out = rewrite_playlist(body, "https://cdn.example.com/v/index.m3u8", REFERER, PROXY)
    expected_seg = proxied_url(PROXY, "https://cdn.example.com/v/seg-1.ts", REFERER)
    assert out == (
        "#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI=\"enc.key\"\n#EXTINF:4.0,\n"
        + expected_seg
        + "\n#EXT-X-ENDLIST\n"
    )


def test_rewrite_leaves_opaque_lines_alone():
    body = "#EXTM3U\nsegment42\n"
    assert rewrite_playlist(body, TARGET, REFERER, PROXY) == body


def test_rewrite_preserves_crlf():
    body = "#EXTM3U\r\n#EXTINF:10,\r\nseg.ts\r\n"
    out = rewrite_playlist(body, TARGET, REFERER, PROXY)
    lines = out.split("\r\n")
    assert lines[0] == "#EXTM3U"
    assert lines[1] == "#EXTINF:10,"
    assert _unwrap(lines[2])[0] == "https://cdn.example.com/hls/show/seg.ts"
    assert out.endswith("\r\n")


def test_rewrite_trims_indented_reference():
    out = rewrite_playlist("  seg.ts  ", TARGET, REFERER, PROXY)
    assert _unwrap(out)[0] == "https://cdn.example.com/hls/show/seg.ts"


def test_rewrite_comment_lines_are_byte_identical():
    body = "#EXTM3U\n#EXT-X-MEDIA:TYPE=SUBTITLES,URI=\"subs/en.m3u8\"\n  \n#EXT-X-DISCONTINUITY\n"
    out = rewrite_playlist(body, TARGET, REFERER, PROXY)
    assert out == body


@pytest.mark.parametrize("content_type,url,expected", [
    ("application/vnd.apple.mpegurl", "https://a/x", True),
    ("application/x-mpegURL", "https://a/x", True),
    ("audio/m3u8", "https://a/x", True),
    ("video/mp2t", "https://a/x.m3u8", True),
    ("video/mp2t", "https://a/x.ts", False),
    ("", "https://a/x.m3u8?token=1", False),
])
def test_is_playlist(content_type, url, expected):
    assert is_playlist(content_type, url) is expected


def test_decode_playlist_strips_bom_and_replaces_bad_bytes():
    assert decode_playlist(b"\xef\xbb\xbf#EXTM3U\n\xff") == "#EXTM3U\n\ufffd"
