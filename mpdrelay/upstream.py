"""Outbound fetch of the source manifest."""

import concurrent.futures
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from .config import RelayConfig
from .errors import UpstreamFetchError, UpstreamReadError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

# Manifests are treated as UTF-8; surrogateescape keeps any other bytes intact
# through decode/encode.
MANIFEST_ENCODING = "utf-8"
MANIFEST_ERRORS = "surrogateescape"

READ_CHUNK_SIZE = 16 * 1024


class FetchedManifest(NamedTuple):
    text: str
    final_url: str
    headers: CaseInsensitiveDict
    status_code: int


def create_session(config: RelayConfig) -> requests.Session:
    """Build the pooled session shared by all request threads.

    Proxy variables, CA bundle overrides and .netrc from the environment are
    ignored.
    """
    session = requests.Session()
    session.trust_env = False
    adapter = HTTPAdapter(pool_connections=config.pool_connections,
                          pool_maxsize=config.pool_maxsize,
                          max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def decode_manifest(body: bytes) -> str:
    return body.decode(MANIFEST_ENCODING, MANIFEST_ERRORS)


def encode_manifest(text: str) -> bytes:
    return text.encode(MANIFEST_ENCODING, MANIFEST_ERRORS)


def download_manifest(session: requests.Session, url: str, timeout: float,
                      deadline: Optional[float] = None) -> FetchedManifest:
    """GET url, following redirects, and return the body with its final URL.

    deadline is a time.monotonic() value; reading stops at the first chunk
    boundary past it.
    """
    try:
        response = session.get(url, timeout=timeout, stream=True)
    except requests.RequestException as e:
        raise UpstreamFetchError(f"GET {url} failed: {e}") from e

    chunks = []
    try:
        for chunk in response.iter_content(READ_CHUNK_SIZE):
            if deadline is not None and time.monotonic() > deadline:
                raise UpstreamTimeoutError(f"reading {response.url} exceeded {timeout}s")
            chunks.append(chunk)
    except (requests.RequestException, OSError) as e:
        raise UpstreamReadError(f"reading {response.url} failed: {e}") from e
    finally:
        response.close()

    if response.history:
        logger.debug(f"{url} redirected to {response.url}")

    return FetchedManifest(
        text=decode_manifest(b"".join(chunks)),
        final_url=response.url,
        headers=response.headers,
        status_code=response.status_code,
    )


class UpstreamFetcher:
    """Runs each fetch on a worker pool so the whole exchange has one deadline.

    A per-socket read timeout does not bound an upstream that trickles bytes,
    so the calling thread waits on the worker for at most fetch_timeout.
    """

    def __init__(self, config: RelayConfig, session: Optional[requests.Session] = None):
        self.timeout = config.fetch_timeout
        self.session = session if session is not None else create_session(config)
        self.executor = ThreadPoolExecutor(max_workers=config.pool_maxsize,
                                           thread_name_prefix="ManifestFetch")

    def fetch(self, url: str) -> FetchedManifest:
        deadline = time.monotonic() + self.timeout
        future = self.executor.submit(download_manifest, self.session, url, self.timeout, deadline)
        try:
            return future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError:
            # A running worker gives up at its next chunk boundary
            future.cancel()
            raise UpstreamTimeoutError(f"GET {url} exceeded {self.timeout}s") from None

    def close(self):
        self.executor.shutdown(wait=False)
        self.session.close()
