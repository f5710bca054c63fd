"""HTTP server for the MPD relay."""

import argparse
import logging
import sys
from http.server import HTTPServer, BaseHTTPRequestHandler
from logging.handlers import RotatingFileHandler
from pathlib import Path
from socketserver import ThreadingMixIn
from typing import Optional, Tuple
from urllib.parse import urlsplit

from .config import (
    RelayConfig, DEFAULT_HOST, DEFAULT_PORT, LOG_FORMAT, LOG_DATEFMT,
    LOG_FILE_MAX_BYTES, LOG_FILE_BACKUP_COUNT
)
from .errors import RelayError, LandingPageError
from .relay import ManifestRelay
from .upstream import UpstreamFetcher
from .utils import compute_etag

logger = logging.getLogger(__name__)


class LandingPage:
    """The bundled index page, read from disk on first use."""

    def __init__(self, path: Path):
        self.path = path
        self._bytes: Optional[bytes] = None
        self._etag: Optional[str] = None

    def get(self) -> Tuple[bytes, str]:
        """Return (bytes, etag). Raises LandingPageError if unreadable."""
        if self._bytes is None:
            try:
                data = self.path.read_bytes()
            except OSError as e:
                raise LandingPageError(f"cannot read {self.path}: {e}") from e
            self._etag = compute_etag(data)
            self._bytes = data
        return self._bytes, self._etag


class ManifestRelayHandler(BaseHTTPRequestHandler):
    """Serves the landing page, or relays a manifest when a query is given."""

    # One response per connection
    protocol_version = "HTTP/1.0"
    server_version = "mpd-relay"
    send_body = True

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")

    def do_GET(self):
        """Handle GET requests."""
        self.close_connection = True
        query = urlsplit(self.path).query
        if not query:
            self._serve_landing_page()
        else:
            self._relay_manifest(query)

    def do_HEAD(self):
        """Handle HEAD requests: same status and headers as GET, no body."""
        self.send_body = False
        self.do_GET()

    def _send_plain_error(self, error: RelayError):
        """Send a short plain-text error; details stay in the log."""
        body = f"{error.message}\n".encode("utf-8")
        self.send_response(error.status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self._write_body(body)

    def _write_body(self, body: bytes):
        # Status and headers are already on the wire; a failure here is only logged
        if not self.send_body:
            return
        try:
            self.wfile.write(body)
            self.wfile.flush()
        except OSError as e:
            logger.warning(f"Failed writing response for {self.path}: {e}")

    def _serve_landing_page(self):
        """Serve the index page with ETag validation."""
        try:
            html_bytes, etag = self.server.landing_page.get()
        except LandingPageError as e:
            logger.error(f"Landing page unavailable: {e.detail}")
            self._send_plain_error(e)
            return

        if_none_match = self.headers.get("If-None-Match")
        if if_none_match and if_none_match == etag:
            self.send_response(304)  # Not Modified
            self.send_header("ETag", etag)
            self.send_header("Connection", "close")
            self.end_headers()
            return

        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(html_bytes)))
        self.send_header("ETag", etag)
        self.send_header("Cache-Control", "no-cache")
        self.send_header("Connection", "close")
        self.end_headers()
        self._write_body(html_bytes)

    def _relay_manifest(self, query: str):
        """Fetch, rewrite and forward the manifest named in the query."""
        try:
            result = self.server.relay.relay_query(query)
        except RelayError as e:
            logger.error(f"{e.message} ({self.path}): {e.detail}")
            self._send_plain_error(e)
            return

        # Upstream's own Date/Server headers are forwarded instead of ours
        self.log_request(result.status)
        self.send_response_only(result.status)
        if not any(name.lower() == "date" for name, _ in result.headers):
            self.send_header("Date", self.date_time_string())
        for name, value in result.headers:
            self.send_header(name, value)
        self.end_headers()
        self._write_body(result.body)


class RelayHTTPServer(ThreadingMixIn, HTTPServer):
    """Thread-per-connection server holding the shared relay state."""

    daemon_threads = True

    def __init__(self, config: RelayConfig, handler_class=ManifestRelayHandler):
        super().__init__((config.host, config.port), handler_class)
        self.config = config
        self.fetcher = UpstreamFetcher(config)
        self.relay = ManifestRelay(config, self.fetcher)
        self.landing_page = LandingPage(config.index_html)

    def server_close(self):
        super().server_close()
        self.fetcher.close()


def setup_logging(config: RelayConfig):
    """Log to stdout, and to a rotating file when one is configured."""
    logging.basicConfig(
        level=config.log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stdout,
    )
    if config.log_file:
        handler = RotatingFileHandler(
            config.log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT
        )
        handler.setLevel(config.log_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        logging.getLogger().addHandler(handler)


def run_server(config: RelayConfig):
    """Start the HTTP server and block until interrupted."""
    server = RelayHTTPServer(config)
    logger.info(f"MPD Relay at http://{config.host}:{server.server_address[1]}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MPD BaseURL Relay Server")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT,
                        help=f"Port to run on (default: {DEFAULT_PORT})")
    parser.add_argument("--host", default=DEFAULT_HOST,
                        help=f"Address to bind (default: {DEFAULT_HOST})")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: INFO)")
    parser.add_argument("--log-file", type=Path, default=None,
                        help="Also write logs to this file (rotated at 5MB)")
    return parser


def main(argv=None):
    """Entry point for the server."""
    args = build_parser().parse_args(argv)
    config = RelayConfig(
        host=args.host,
        port=args.port,
        log_level=getattr(logging, args.log_level),
        log_file=args.log_file,
    )
    setup_logging(config)
    run_server(config)


if __name__ == "__main__":
    main()
