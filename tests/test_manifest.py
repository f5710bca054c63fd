"""Unit tests for BaseURL rewriting and the filename/URL helpers."""

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from mpdrelay.config import RelayConfig
from mpdrelay.errors import BaseURLNotFoundError, MissingParameterError, UpstreamReadError
from mpdrelay.manifest import find_base_url, is_absolute, proxied_base_url, rewrite_manifest
from mpdrelay.relay import build_response_headers, parse_relay_query, response_filename
from mpdrelay.upstream import (
    FetchedManifest, UpstreamFetcher, create_session, decode_manifest, download_manifest,
    encode_manifest
)
from mpdrelay.utils import (
    content_disposition, filename_from_disposition, filename_from_url, url_directory
)

MPD = """<?xml version="1.0" encoding="UTF-8"?>
<MPD xmlns="urn:mpeg:dash:schema:mpd:2011" type="static">
  <BaseURL>{base}</BaseURL>
  <Period id="0"/>
</MPD>
"""


def _fetched(headers=None, final_url="http://origin.example/path/manifest.mpd"):
    return FetchedManifest(
        text=MPD.format(base="seg/"),
        final_url=final_url,
        headers=CaseInsensitiveDict(headers or {}),
        status_code=200,
    )


def test_find_base_url_returns_first_tag():
    text = "<BaseURL>a/</BaseURL><BaseURL>b/</BaseURL>"
    assert find_base_url(text) == ("<BaseURL>a/</BaseURL>", "a/")


def test_find_base_url_missing():
    with pytest.raises(BaseURLNotFoundError):
        find_base_url(MPD.replace("BaseURL", "Location"))


def test_base_url_does_not_span_lines():
    with pytest.raises(BaseURLNotFoundError):
        find_base_url("<BaseURL>seg/\n</BaseURL>")


def test_is_absolute():
    assert is_absolute("http://cdn.example/seg/")
    assert is_absolute("HTTPS://cdn.example/seg/")
    assert not is_absolute("seg/")
    assert not is_absolute("/seg/")
    assert not is_absolute("httpdocs/seg/")


def test_absolute_base_url_gets_prefix_only():
    out = rewrite_manifest(MPD.format(base="http://cdn.example/seg/"), "https://px/",
                           "http://origin.example/path/manifest.mpd")
    assert "<BaseURL>https://px/http://cdn.example/seg/</BaseURL>" in out


def test_relative_base_url_resolved_against_final_url():
    out = rewrite_manifest(MPD.format(base="seg/"), "https://px/",
                           "http://origin.example/path/manifest.mpd")
    assert "<BaseURL>https://px/http://origin.example/path/seg/</BaseURL>" in out


def test_relative_base_url_directory_stops_at_last_slash():
    assert proxied_base_url("seg/", "P/", "http://o.example/a/b.mpd?x=1") == "P/http://o.example/a/seg/"


def test_rewrite_replaces_identical_tags_only():
    text = ("<BaseURL>seg/</BaseURL>\n<BaseURL>other/</BaseURL>\n<BaseURL>seg/</BaseURL>")
    out = rewrite_manifest(text, "https://px/", "http://o.example/m.mpd")
    assert out.count("<BaseURL>https://px/http://o.example/seg/</BaseURL>") == 2
    assert "<BaseURL>other/</BaseURL>" in out


def test_rewrite_keeps_rest_of_document():
    text = MPD.format(base="seg/")
    out = rewrite_manifest(text, "https://px/", "http://o.example/m.mpd")
    assert out.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert out.endswith("</MPD>\n")
    assert '<Period id="0"/>' in out


def test_url_directory():
    assert url_directory("http://o.example/path/manifest.mpd") == "http://o.example/path/"
    assert url_directory("http://o.example/") == "http://o.example/"


def test_filename_from_disposition():
    assert filename_from_disposition('attachment; filename="movie.mpd"') == "movie.mpd"
    assert filename_from_disposition('inline; FILENAME="Movie.mpd"; size=3') == "Movie.mpd"
    assert filename_from_disposition("attachment; filename=movie.mpd") == ""
    assert filename_from_disposition(None) == ""


def test_filename_from_url():
    assert filename_from_url("http://o.example/path/manifest.mpd") == "manifest.mpd"
    assert filename_from_url("http://o.example/path/manifest.mpd?token=a/b") == "manifest.mpd"
    assert filename_from_url("http://o.example/path/") == ""


def test_content_disposition_encoding():
    assert content_disposition("movie.mpd") == "attachment; filename*=UTF-8''movie.mpd"
    assert content_disposition("my movie.mpd") == "attachment; filename*=UTF-8''my%20movie.mpd"
    assert content_disposition("my%20movie.mpd") == "attachment; filename*=UTF-8''my%20movie.mpd"


def test_response_filename_prefers_upstream_disposition():
    fetched = _fetched({"Content-Disposition": 'attachment; filename="movie.mpd"'})
    assert response_filename(fetched) == "movie.mpd"
    assert response_filename(_fetched()) == "manifest.mpd"


def test_build_response_headers_strips_and_recomputes():
    fetched = _fetched({
        "Content-Type": "application/dash+xml",
        "Content-Length": "9999",
        "Connection": "keep-alive",
        "Proxy-Connection": "keep-alive",
        "Transfer-Encoding": "chunked",
        "Content-Disposition": 'attachment; filename="movie.mpd"',
        "Content-Encoding": "gzip",
        "X-Cache": "HIT",
    })
    headers = build_response_headers(fetched, 42)
    names = [name.lower() for name, _ in headers]
    assert names.count("content-length") == 1
    assert names.count("connection") == 1
    assert names.count("content-disposition") == 1
    assert "proxy-connection" not in names
    assert "transfer-encoding" not in names
    assert "content-encoding" not in names
    values = dict(headers)
    assert values["Content-Type"] == "application/dash+xml"
    assert values["X-Cache"] == "HIT"
    assert values["Content-Length"] == "42"
    assert values["Connection"] == "close"
    assert values["Content-Disposition"] == "attachment; filename*=UTF-8''movie.mpd"


def test_parse_relay_query():
    assert parse_relay_query("sourceUrl=http%3A%2F%2Fo%2Fm.mpd&proxyUrl=https%3A%2F%2Fpx%2F") == (
        "http://o/m.mpd", "https://px/")
    assert parse_relay_query("mpdurl=http://o/m.mpd&proxyurl=P") == ("http://o/m.mpd", "P")


@pytest.mark.parametrize("query", [
    "sourceUrl=http://o/m.mpd",
    "proxyUrl=https://px/",
    "sourceUrl=&proxyUrl=https://px/",
    "foo=bar",
])
def test_parse_relay_query_missing(query):
    with pytest.raises(MissingParameterError) as excinfo:
        parse_relay_query(query)
    assert excinfo.value.status == 400


def test_manifest_bytes_survive_decoding():
    raw = "<BaseURL>ség/</BaseURL>".encode("utf-8") + b"\xff\xfe"
    assert encode_manifest(decode_manifest(raw)) == raw


def test_filename_from_disposition_non_ascii():
    # Header values arrive latin-1 decoded; UTF-8 names are restored before quoting
    name = filename_from_disposition('attachment; filename="film\xc3\xa9.mpd"')
    assert name == "filmé.mpd"
    assert content_disposition(name) == "attachment; filename*=UTF-8''film%C3%A9.mpd"
    assert filename_from_disposition('attachment; filename="caf\xe9.mpd"') == "café.mpd"


def test_create_session_ignores_environment():
    session = create_session(RelayConfig())
    assert session.trust_env is False
    adapter = session.get_adapter("http://o.example/")
    assert adapter.poolmanager.connection_pool_kw["maxsize"] == 100
    assert adapter.max_retries.total == 0
    session.close()


class _BrokenBodyResponse:
    url = "http://o.example/m.mpd"
    history = []
    status_code = 200
    headers = CaseInsensitiveDict()

    def iter_content(self, chunk_size=1):
        yield b"<MPD>"
        raise requests.exceptions.ChunkedEncodingError("connection broken mid-body")

    def close(self):
        pass


class _BrokenBodySession:
    def get(self, url, **kwargs):
        return _BrokenBodyResponse()

    def close(self):
        pass


def test_fetch_read_failure():
    with pytest.raises(UpstreamReadError) as excinfo:
        download_manifest(_BrokenBodySession(), "http://o.example/m.mpd", 1)
    assert excinfo.value.status == 500


def test_fetcher_propagates_read_failure():
    fetcher = UpstreamFetcher(RelayConfig(fetch_timeout=5), session=_BrokenBodySession())
    try:
        with pytest.raises(UpstreamReadError):
            fetcher.fetch("http://o.example/m.mpd")
    finally:
        fetcher.close()
