"""
Skyhub Errors

Failure taxonomy for the ingestion pipeline. Every error carries the
pipeline stage it belongs to so reports can attribute it without
inspecting the exception type.
"""


class SkyhubError(Exception):
    """Base class for all pipeline errors."""

    stage = "unknown"


class TransportError(SkyhubError):
    """Network-level failure (connection, timeout, bad status)."""

    stage = "fetch"


class MalformedResponseError(SkyhubError):
    """Manifest body is not JSON or does not have the expected shape."""

    stage = "manifest"


class DecodeError(SkyhubError):
    """Downloaded bytes are not a decodable JPEG."""

    stage = "decode"


class NameDerivationError(SkyhubError):
    """A logical name cannot be derived from the source URL."""

    stage = "name"


class StorageWriteError(SkyhubError):
    """The resized image could not be persisted."""

    stage = "store"


class IndexWriteError(SkyhubError):
    """The index record could not be written."""

    stage = "index"


class IndexConnectError(SkyhubError):
    """The index store could not be opened."""

    stage = "index"


class DeadlineExceededError(SkyhubError):
    """The run deadline expired before this unit finished."""

    stage = "deadline"
