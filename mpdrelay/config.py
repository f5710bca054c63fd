"""Configuration constants and the runtime config object for the MPD relay."""

import logging
from pathlib import Path
from typing import Optional

# Base directories
PACKAGE_DIR = Path(__file__).parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
INDEX_HTML = TEMPLATES_DIR / "index.html"

# Server configuration
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 10079

# Outbound fetch configuration
FETCH_TIMEOUT_SECONDS = 60
POOL_CONNECTIONS = 100  # Number of per-host pools kept by the adapter
POOL_MAXSIZE = 100      # Idle connections kept per host

# Query parameters: canonical name first, then legacy aliases
SOURCE_URL_PARAMS = ("sourceUrl", "mpdurl")
PROXY_URL_PARAMS = ("proxyUrl", "proxyurl")

# Upstream headers that are recomputed or meaningless on a terminal hop.
# Content-Encoding goes too: requests always returns a decoded body.
STRIPPED_RESPONSE_HEADERS = frozenset({
    "connection",
    "content-disposition",
    "content-length",
    "proxy-connection",
    "transfer-encoding",
    "content-encoding",
})

# Logging
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5MB
LOG_FILE_BACKUP_COUNT = 3


class RelayConfig:
    """Runtime settings handed to the server at startup."""

    def __init__(self,
                 host: str = DEFAULT_HOST,
                 port: int = DEFAULT_PORT,
                 fetch_timeout: float = FETCH_TIMEOUT_SECONDS,
                 pool_connections: int = POOL_CONNECTIONS,
                 pool_maxsize: int = POOL_MAXSIZE,
                 index_html: Path = INDEX_HTML,
                 log_level: int = logging.INFO,
                 log_file: Optional[Path] = None):
        self.host = host
        self.port = port
        self.fetch_timeout = fetch_timeout
        self.pool_connections = pool_connections
        self.pool_maxsize = pool_maxsize
        self.index_html = Path(index_html)
        self.log_level = log_level
        self.log_file = Path(log_file) if log_file else None

    def __repr__(self):
        return (f"RelayConfig(host={self.host!r}, port={self.port}, "
                f"fetch_timeout={self.fetch_timeout}, index_html={str(self.index_html)!r})")
