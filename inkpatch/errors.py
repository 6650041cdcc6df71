"""
Exception types raised by inkpatch.
"""


class InkpatchError(Exception):
    """Base class for all inkpatch errors."""


class DecodeError(InkpatchError):
    """The source document could not be opened or parsed."""


class AssetUnavailable(InkpatchError):
    """A font or image could not be fetched or decoded."""

    def __init__(self, key: str, reason: str = ""):
        self.key = key
        self.reason = reason
        message = f"Asset unavailable: {key}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class BoundsError(InkpatchError, IndexError):
    """A page or annotation reference points outside the known range."""


class ExportError(InkpatchError):
    """The exported document could not be produced or written."""
