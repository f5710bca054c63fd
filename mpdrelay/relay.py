"""Fetch, rewrite and re-head a manifest for the relay endpoint."""

import logging
from typing import List, NamedTuple, Tuple
from urllib.parse import parse_qs

from .config import (
    RelayConfig, SOURCE_URL_PARAMS, PROXY_URL_PARAMS, STRIPPED_RESPONSE_HEADERS
)
from .errors import MissingParameterError
from .manifest import rewrite_manifest
from .upstream import FetchedManifest, UpstreamFetcher, encode_manifest
from .utils import content_disposition, filename_from_disposition, filename_from_url

logger = logging.getLogger(__name__)


class RelayedManifest(NamedTuple):
    status: int
    headers: List[Tuple[str, str]]
    body: bytes


def _first_param(params: dict, names) -> str:
    for name in names:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return ""


def parse_relay_query(query: str) -> Tuple[str, str]:
    """Return (source URL, proxy prefix) from a raw query string.

    Raises MissingParameterError if either is absent or empty.
    """
    params = parse_qs(query)
    source_url = _first_param(params, SOURCE_URL_PARAMS)
    proxy_prefix = _first_param(params, PROXY_URL_PARAMS)
    if not source_url or not proxy_prefix:
        raise MissingParameterError(f"query={query!r}")
    return source_url, proxy_prefix


def response_filename(fetched: FetchedManifest) -> str:
    """Filename from upstream Content-Disposition, else from the final URL."""
    return (filename_from_disposition(fetched.headers.get("Content-Disposition"))
            or filename_from_url(fetched.final_url))


def build_response_headers(fetched: FetchedManifest, body_length: int) -> List[Tuple[str, str]]:
    """Upstream headers minus hop/length ones, plus the recomputed set."""
    headers = [(name, value) for name, value in fetched.headers.items()
               if name.lower() not in STRIPPED_RESPONSE_HEADERS]
    headers.append(("Content-Disposition", content_disposition(response_filename(fetched))))
    headers.append(("Content-Length", str(body_length)))
    headers.append(("Connection", "close"))
    return headers


class ManifestRelay:
    """Relays one manifest per call through a shared fetcher."""

    def __init__(self, config: RelayConfig, fetcher: UpstreamFetcher):
        self.config = config
        self.fetcher = fetcher

    def relay(self, source_url: str, proxy_prefix: str) -> RelayedManifest:
        """Fetch source_url and return it with its base URL behind proxy_prefix."""
        fetched = self.fetcher.fetch(source_url)
        rewritten = rewrite_manifest(fetched.text, proxy_prefix, fetched.final_url)
        body = encode_manifest(rewritten)
        logger.info(f"Relayed {fetched.final_url} ({fetched.status_code}, {len(body)} bytes)")
        return RelayedManifest(
            status=fetched.status_code,
            headers=build_response_headers(fetched, len(body)),
            body=body,
        )

    def relay_query(self, query: str) -> RelayedManifest:
        source_url, proxy_prefix = parse_relay_query(query)
        return self.relay(source_url, proxy_prefix)
