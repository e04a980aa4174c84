"""
Exception hierarchy for songstore.

Everything raised on purpose by this package derives from ``SongStoreError``
so callers can catch the whole family in one place. "Not found" is never an
exception: lookups return ``None`` or omit the key instead.
"""

from typing import Any, Optional


class SongStoreError(Exception):
    """Base class for all songstore errors."""


# ============================================================================
# Container / codec errors (caller-recoverable, raised before any I/O)
# ============================================================================

class ContainerError(SongStoreError):
    """Malformed or unsupported audio container input."""


class InvalidParametersError(ContainerError, ValueError):
    """Sizes, rates or ranges supplied by the caller are inconsistent."""


class MisalignedDataError(ContainerError, ValueError):
    """Byte payload length does not line up with the sample layout."""


class TooSmallError(ContainerError):
    """Buffer is shorter than the 44-byte header."""


class BadMagicError(ContainerError):
    """RIFF / WAVE tags are missing."""


class UnsupportedFormatError(ContainerError):
    """Format code is not linear PCM."""


class UnsupportedBitDepthError(ContainerError):
    """Only 16-bit samples are supported for conversion."""


class ConversionError(SongStoreError):
    """The external ffmpeg process did not succeed."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class ConfigError(SongStoreError):
    """Store configuration could not be built."""


# ============================================================================
# Store errors
# ============================================================================

class StoreError(SongStoreError):
    """The document store was unreachable or rejected an operation."""


class FingerprintIndexError(StoreError):
    """A fingerprint index operation failed at the store."""

    def __init__(self, message: str, address: Optional[int] = None):
        super().__init__(message)
        self.address = address


class RegistryError(StoreError):
    """A song registry operation failed at the store."""


class DuplicateSongError(RegistryError):
    """A song with the same external reference and identity key exists."""


class InvalidFilterError(SongStoreError, ValueError):
    """Song lookup requested on a field outside the allow-list."""


class CorruptRecordError(SongStoreError):
    """A persisted document does not match its expected shape."""

    def __init__(self, collection: str, key: Any, reason: str):
        super().__init__(f"corrupt {collection} record {key!r}: {reason}")
        self.collection = collection
        self.key = key
        self.reason = reason
