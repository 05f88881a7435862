"""
File ingestion error hierarchy.

Scan and watch-setup errors are fatal to the operation that raised them.
Transfer errors never leave the uploader: they are folded into an
``UploadResult`` with status ``error``.
"""


class FileIngestError(Exception):
    """Base exception for file ingestion failures."""

    pass


class ScanError(FileIngestError):
    """Folder could not be read or walked."""

    pass


class WatchSetupError(FileIngestError):
    """Filesystem notification backend could not be installed."""

    pass


class PipelineConfigError(FileIngestError):
    """Pipeline operation rejected because configuration is incomplete."""

    pass


class TransferError(FileIngestError):
    """A remote call made by the uploader failed."""

    pass


class NetworkError(TransferError):
    """Transport-level failure (connect, timeout, reset)."""

    pass


class RemoteProtocolError(TransferError):
    """Non-2xx response or a body that could not be parsed."""

    pass


class PollTimeout(FileIngestError):
    """Poll budget exhausted before the job reached a terminal state."""

    pass
