"""Errors raised while relaying a manifest.

Each error carries the HTTP status returned to the client and a short
public message. The underlying cause stays in the log only.
"""


class RelayError(Exception):
    """Base class for errors that end a request."""

    status = 500
    message = "internal server error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)
        self.detail = detail


class MissingParameterError(RelayError):
    status = 400
    message = "missing required parameter: sourceUrl or proxyUrl"


class UpstreamFetchError(RelayError):
    message = "failed to fetch source URL"


class UpstreamReadError(RelayError):
    message = "failed to read source response"


class BaseURLNotFoundError(RelayError):
    message = "base URL not found in manifest"


class EmptyManifestError(RelayError):
    message = "generated content is empty"


class LandingPageError(RelayError):
    """The bundled landing page could not be read."""


class UpstreamTimeoutError(UpstreamFetchError):
    """The fetch did not finish within the total fetch timeout."""

    message = "timed out fetching source URL"
