"""
Error taxonomy for the image server.

Every failure a request can end in is an HTTP exception, so handlers simply
raise and the Flask error handler in :mod:`imagestreams.routes` renders a short
plain-text diagnostic with the right status code.

    ClientError          400  malformed download path, unrecognized filename
    NotFoundError        404  no registry record for the requested coordinates
    DataCorruptionError  500  registry record present but not decodable
    RegistryError        503  registry backend unreachable or failing
    UpstreamError        *    origin fetch failed; upstream status mirrored
"""

from werkzeug.exceptions import HTTPException


class ImageStreamsError(HTTPException):
    """Base class for all request-terminating image server errors."""

    code = 500


class ClientError(ImageStreamsError):
    """The request itself is invalid; safe to show the diagnostic."""

    code = 400


class NotFoundError(ImageStreamsError):
    """The registry has no record for the requested coordinates."""

    code = 404


class DataCorruptionError(ImageStreamsError):
    """A registry record exists but is malformed (producer-side bug)."""

    code = 500

    def __init__(self, description, key=None):
        super().__init__(description)
        self.key = key


class RegistryError(ImageStreamsError):
    """The registry backend could not be read."""

    code = 503


class UpstreamError(ImageStreamsError):
    """
    The origin fetch failed or returned a non-success status.

    The status code is passed through from the origin. Transport failures
    (DNS, connect, TLS) where no status exists use 502 Bad Gateway.
    """

    code = 502

    def __init__(self, description, status=None, url=None):
        super().__init__(description)
        if status is not None:
            self.code = status
        self.url = url
