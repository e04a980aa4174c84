import logging
import secrets
from enum import Enum
from typing import Any, Optional, Union

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import MAX_ID_ATTEMPTS, SONGS_COLLECTION
from .db import DocumentStore
from .errors import DuplicateSongError, InvalidFilterError, InvalidParametersError, RegistryError, StoreError
from .models import Song, check_uint32, decode_song, make_identity_key

log = logging.getLogger("songstore.songs")

IDENTITY_INDEX = "externalRef_identityKey_unique"


class SongField(Enum):
    """Fields a song may be looked up by."""

    ID = "_id"
    EXTERNAL_REF = "externalRef"
    IDENTITY_KEY = "identityKey"


def _coerce_lookup(field: SongField, value: Any) -> Any:
    if field is SongField.ID:
        return check_uint32("song_id", value)
    if field is SongField.EXTERNAL_REF or field is SongField.IDENTITY_KEY:
        if not isinstance(value, str):
            raise InvalidFilterError(f"{field.value} lookups need a string, got {value!r}")
        return value
    raise InvalidFilterError(f"unhandled lookup field: {field!r}")


class SongRegistry:
    """
    Catalog of known songs.

    ``(externalRef, identityKey)`` is unique across the collection. The
    guarantee comes from a unique index, so two workers registering the same
    song at once still end up with exactly one record.
    """

    def __init__(self, store: DocumentStore, collection: str = SONGS_COLLECTION,
                 max_id_attempts: int = MAX_ID_ATTEMPTS):
        self.store = store
        self.collection_name = collection
        self.max_id_attempts = max_id_attempts

    @property
    def _collection(self):
        return self.store.collection(self.collection_name)

    def _generate_id(self) -> int:
        return secrets.randbits(32)

    def _ensure_indexes(self) -> None:
        # idempotent; re-run on every register so a dropped collection gets its index back
        try:
            self._collection.create_index(
                [("externalRef", ASCENDING), ("identityKey", ASCENDING)],
                unique=True,
                name=IDENTITY_INDEX,
            )
        except PyMongoError as e:
            raise RegistryError(f"failed to create unique index: {e}") from e

    def register(self, title: str, artist: str, external_ref: str) -> int:
        """
        Add a song and return its new id.

        Raises:
            InvalidParametersError: an argument is not a string or holds the key separator
            DuplicateSongError: a song with this external ref and identity exists
            RegistryError: the store failed
        """
        for name, value in (("title", title), ("artist", artist), ("external_ref", external_ref)):
            if not isinstance(value, str):
                raise InvalidParametersError(f"{name} must be a string, got {value!r}")
        key = make_identity_key(title, artist)
        self._ensure_indexes()
        collection = self._collection

        for _ in range(self.max_id_attempts):
            song_id = self._generate_id()
            try:
                collection.insert_one({"_id": song_id, "identityKey": key, "externalRef": external_ref})
            except DuplicateKeyError as e:
                if self._is_identity_conflict(e, key, external_ref):
                    raise DuplicateSongError(
                        f"song with externalRef {external_ref!r} and key {key!r} already exists"
                    ) from e
                log.debug(f"Song id {song_id} already taken, drawing another")
                continue
            except PyMongoError as e:
                raise RegistryError(f"failed to register song: {e}") from e

            log.info(f"Registered '{title}' by '{artist}' as {song_id}")
            return song_id

        raise RegistryError(f"could not allocate a free song id after {self.max_id_attempts} attempts")

    def _is_identity_conflict(self, error: DuplicateKeyError, key: str, external_ref: str) -> bool:
        pattern = (error.details or {}).get("keyPattern")
        if pattern:
            return "_id" not in pattern
        # no key pattern reported: check whether the identity pair is taken
        try:
            existing = self._collection.find_one({"externalRef": external_ref, "identityKey": key})
        except PyMongoError as e:
            raise RegistryError(f"failed to register song: {e}") from e
        return existing is not None

    def get_song(self, field: Union[SongField, str], value: Any) -> Optional[Song]:
        """
        Look up one song by an allow-listed field.

        Args:
            field: A ``SongField`` member (or its string value)
            value: Value to match

        Returns:
            The song, or None when no record matches
        """
        try:
            field = SongField(field)
        except ValueError:
            raise InvalidFilterError(f"invalid filter key: {field!r}") from None

        value = _coerce_lookup(field, value)
        try:
            doc = self._collection.find_one({field.value: value})
        except PyMongoError as e:
            raise RegistryError(f"failed to retrieve song: {e}") from e

        if doc is None:
            return None
        return decode_song(doc)

    def get_by_id(self, song_id: int) -> Optional[Song]:
        return self.get_song(SongField.ID, song_id)

    def get_by_external_ref(self, external_ref: str) -> Optional[Song]:
        return self.get_song(SongField.EXTERNAL_REF, external_ref)

    def get_by_identity_key(self, key: str) -> Optional[Song]:
        return self.get_song(SongField.IDENTITY_KEY, key)

    def delete_by_id(self, song_id: int) -> bool:
        """Delete a song; returns whether a record was removed. Missing ids are fine."""
        song_id = check_uint32("song_id", song_id)
        try:
            result = self._collection.delete_one({"_id": song_id})
        except PyMongoError as e:
            raise RegistryError(f"failed to delete song: {e}") from e
        return result.deleted_count > 0

    def count(self) -> int:
        try:
            return int(self._collection.count_documents({}))
        except PyMongoError as e:
            raise RegistryError(f"failed to count songs: {e}") from e

    def drop_all(self) -> None:
        try:
            self.store.drop_collection(self.collection_name)
        except StoreError as e:
            raise RegistryError(str(e)) from e
