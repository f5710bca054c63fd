"""Locate and rewrite the <BaseURL> element of an MPD manifest.

Matching is done with a regular expression rather than an XML parser so that
slightly malformed manifests still pass through untouched apart from the
rewritten tag.
"""

import re
from typing import Tuple

from .errors import BaseURLNotFoundError, EmptyManifestError
from .utils import url_directory

BASE_URL_RE = re.compile(r"<BaseURL>(.*?)</BaseURL>")
_ABSOLUTE_RE = re.compile(r"https?://", re.IGNORECASE)


def find_base_url(manifest: str) -> Tuple[str, str]:
    """Return (matched tag text, base URL) for the first <BaseURL> tag.

    Raises BaseURLNotFoundError if the manifest has none.
    """
    match = BASE_URL_RE.search(manifest)
    if match is None:
        raise BaseURLNotFoundError("no <BaseURL> element in manifest")
    return match.group(0), match.group(1)


def is_absolute(base_url: str) -> bool:
    return _ABSOLUTE_RE.match(base_url) is not None


def proxied_base_url(base_url: str, proxy_prefix: str, final_url: str) -> str:
    """Point base_url through proxy_prefix.

    Relative base URLs are first resolved against the directory of the URL
    the manifest was actually served from.
    """
    if is_absolute(base_url):
        return proxy_prefix + base_url
    return proxy_prefix + url_directory(final_url) + base_url


def rewrite_manifest(manifest: str, proxy_prefix: str, final_url: str) -> str:
    """Rewrite the manifest's base URL to go through proxy_prefix.

    Every occurrence of the first matched tag's exact text is replaced;
    <BaseURL> tags with other content are left alone.
    """
    tag, base_url = find_base_url(manifest)
    new_tag = f"<BaseURL>{proxied_base_url(base_url, proxy_prefix, final_url)}</BaseURL>"
    rewritten = manifest.replace(tag, new_tag)
    if not rewritten:
        raise EmptyManifestError("rewritten manifest is empty")
    return rewritten
