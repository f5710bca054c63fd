"""Utility functions for the MPD relay."""

import hashlib
import re
from typing import Optional
from urllib.parse import quote

_FILENAME_RE = re.compile(r'filename="([^"]+)"', re.IGNORECASE)

# RFC 5987 attr-char, plus '%' so names already escaped in a URL stay as they are
_ATTR_SAFE = "!#$&+-.^_`|~%"


def compute_etag(content: bytes) -> str:
    """Compute an ETag for content using MD5 hash."""
    return hashlib.md5(content).hexdigest()[:16]


def url_directory(url: str) -> str:
    """Return url up to and including its last '/'."""
    return url[:url.rfind("/") + 1]


def filename_from_disposition(header: Optional[str]) -> str:
    """Extract the quoted filename from a Content-Disposition value, or ''."""
    if not header:
        return ""
    match = _FILENAME_RE.search(header)
    if not match:
        return ""
    # http.client hands header values over decoded as latin-1; most servers send UTF-8
    name = match.group(1)
    try:
        return name.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return name


def filename_from_url(url: str) -> str:
    """Last path segment of url, ignoring any query string."""
    path = url.split("?", 1)[0]
    return path[path.rfind("/") + 1:]


def content_disposition(filename: str) -> str:
    """Build an attachment Content-Disposition with an RFC 5987 filename."""
    return f"attachment; filename*=UTF-8''{quote(filename, safe=_ATTR_SAFE)}"
