"""
Value types and the decode contracts for stored documents.

Documents coming back from the store are untrusted: every field is checked
here and a mismatch raises ``CorruptRecordError`` instead of leaking a bad
value to callers.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Tuple

from .config import FINGERPRINTS_COLLECTION, KEY_SEPARATOR, SONGS_COLLECTION, UINT32_MAX
from .errors import CorruptRecordError, InvalidParametersError


def _is_uint32(value: Any) -> bool:
    # bool is an int subclass; a stored true/false is never a valid id or time
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= UINT32_MAX


def check_uint32(name: str, value: Any) -> int:
    """Coerce integer-likes (including numpy scalars) to a plain uint32 int."""
    if isinstance(value, bool):
        raise InvalidParametersError(f"{name} must be an unsigned 32-bit integer, got {value!r}")
    try:
        as_int = int(value)
    except (TypeError, ValueError):
        raise InvalidParametersError(f"{name} must be an unsigned 32-bit integer, got {value!r}") from None
    if as_int != value or not 0 <= as_int <= UINT32_MAX:
        raise InvalidParametersError(f"{name} must be an unsigned 32-bit integer, got {value!r}")
    return as_int


@dataclass(frozen=True)
class Couple:
    """Song ``song_id`` has a fingerprint ``anchor_time_ms`` into the track."""

    anchor_time_ms: int
    song_id: int

    def __post_init__(self):
        object.__setattr__(self, "anchor_time_ms", check_uint32("anchor_time_ms", self.anchor_time_ms))
        object.__setattr__(self, "song_id", check_uint32("song_id", self.song_id))

    def to_document(self) -> dict:
        return {"anchorTimeMs": self.anchor_time_ms, "songID": self.song_id}


@dataclass(frozen=True)
class Song:
    song_id: int
    title: str
    artist: str
    external_ref: str

    @property
    def identity_key(self) -> str:
        return make_identity_key(self.title, self.artist)


def make_identity_key(title: str, artist: str) -> str:
    if KEY_SEPARATOR in title or KEY_SEPARATOR in artist:
        raise InvalidParametersError("title and artist must not contain the identity key separator")
    return f"{title}{KEY_SEPARATOR}{artist}"


def split_identity_key(key: str) -> Tuple[str, str]:
    title, sep, artist = key.partition(KEY_SEPARATOR)
    if not sep:
        raise ValueError(f"identity key has no separator: {key!r}")
    return title, artist


# ============================================================================
# Decode contracts
# ============================================================================

def decode_bucket(address: int, doc: Mapping[str, Any]) -> List[Couple]:
    """Decode a ``fingerprints`` document into its couples, in stored order."""
    couples = doc.get("couples")
    if not isinstance(couples, list):
        raise CorruptRecordError(FINGERPRINTS_COLLECTION, address, "couples field is missing or not a list")

    decoded = []
    for i, item in enumerate(couples):
        if not isinstance(item, Mapping):
            raise CorruptRecordError(FINGERPRINTS_COLLECTION, address, f"couple #{i} is not a document")
        anchor = item.get("anchorTimeMs")
        song_id = item.get("songID")
        if not (_is_uint32(anchor) and _is_uint32(song_id)):
            raise CorruptRecordError(
                FINGERPRINTS_COLLECTION, address,
                f"couple #{i} has invalid fields (anchorTimeMs={anchor!r}, songID={song_id!r})",
            )
        decoded.append(Couple(anchor, song_id))
    return decoded


def decode_song(doc: Mapping[str, Any]) -> Song:
    song_id = doc.get("_id")
    if not _is_uint32(song_id):
        raise CorruptRecordError(SONGS_COLLECTION, song_id, "_id is not an unsigned 32-bit integer")

    key = doc.get("identityKey")
    ref = doc.get("externalRef")
    if not isinstance(key, str) or KEY_SEPARATOR not in key:
        raise CorruptRecordError(SONGS_COLLECTION, song_id, f"invalid identityKey {key!r}")
    if not isinstance(ref, str):
        raise CorruptRecordError(SONGS_COLLECTION, song_id, f"invalid externalRef {ref!r}")

    title, artist = split_identity_key(key)
    return Song(song_id=song_id, title=title, artist=artist, external_ref=ref)
